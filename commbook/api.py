"""
commbook/api.py
─────────────────────────────────────────────────────────────────────────────
commbook report trigger HTTP API

USAGE:
    python -m commbook.api                   # default: port 8000
    python -m commbook.api --port 9000
    uvicorn commbook.api:app --port 8000

ENDPOINTS:
  GET|POST /api/cron  run one report tick (called by the scheduler)
  GET      /health    server status and db path

/api/cron RESPONSES:
  404 "Not Found"     daily_reports disabled in configuration
  401 "Unauthorized"  missing or wrong bearer token
  200 true            policies ran (individual send failures are logged only)
  200 false           short-circuited: no recipients or no sender configured
  500                 communication/watermark store or roster failure;
                      no watermark was advanced

SECURITY NOTES:
  - Bearer token compared in constant time against cron_job_token
    (falling back to auth_secret). An empty configured token rejects
    every request.
  - The token is never logged.
"""

from __future__ import annotations

import hmac
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse

from commbook import __version__
from commbook.config import load_config, parse_bool, resolve_path, resolve_token
from commbook.errors import RosterError, StoreError
from commbook.orchestrator import ReportOrchestrator

logger = logging.getLogger(__name__)


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip()


def is_authorized(authorization: Optional[str], expected: str) -> bool:
    """Fail closed: no configured token, no header, or mismatch → False."""
    supplied = _bearer(authorization)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def build_app(
    config: Dict[str, Any],
    orchestrator_factory: Optional[Callable[[], ReportOrchestrator]] = None,
    project_root: Optional[Path] = None,
) -> FastAPI:
    """
    Build the FastAPI application. The orchestrator is constructed per
    request so every tick sees fresh stores and configuration.
    """
    if orchestrator_factory is None:
        def orchestrator_factory() -> ReportOrchestrator:
            return ReportOrchestrator.from_config(config, project_root)

    _app = FastAPI(
        title       = "commbook reports",
        description = "Communications notebook scheduled report trigger",
        version     = __version__,
        docs_url    = None,
        redoc_url   = None,
    )

    @_app.api_route("/api/cron", methods=["GET", "POST"], summary="Run one report tick")
    def cron(authorization: Optional[str] = Header(None)):
        if not parse_bool(config.get("daily_reports")):
            return JSONResponse(content="Not Found", status_code=404)
        if not is_authorized(authorization, resolve_token(config)):
            logger.warning("Report trigger rejected: bad or missing token")
            return JSONResponse(content="Unauthorized", status_code=401)

        try:
            result = orchestrator_factory().run()
        except (StoreError, RosterError) as exc:
            logger.error(f"Report tick failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Report run failed")

        return JSONResponse(content=result.executed, status_code=200)

    @_app.get("/health", summary="Health check")
    def health():
        db_path = resolve_path(config, "db_path", project_root)
        return {
            "status":        "ok",
            "db_exists":     db_path.exists(),
            "db_path":       str(db_path),
            "daily_reports": parse_bool(config.get("daily_reports")),
            "version":       __version__,
        }

    return _app


def create_app(project_root: Optional[Path] = None) -> FastAPI:
    root = project_root or Path.cwd()
    return build_app(load_config(root), project_root=root)


# Module-level app instance, used by uvicorn commbook.api:app
app = create_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m commbook.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(
        prog        = "commbook.api",
        description = "commbook report trigger server",
    )
    parser.add_argument("--port", type=int, default=8000,
                        help="Port to bind (default: 8000)")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Host to bind (default: 127.0.0.1)")
    args = parser.parse_args()

    logging.basicConfig(
        level   = logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")
