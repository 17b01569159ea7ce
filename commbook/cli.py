"""
commbook/cli.py
Command-line interface for the commbook report engine.

USAGE:
  commbook run                      # one report tick, right now
  commbook run --dry-run            # evaluate policies, print subjects, send nothing
  commbook serve --port 8000        # HTTP trigger server (uvicorn)
  commbook cron                     # scheduler process that calls the trigger
  commbook add -s E001 -j MAT1 -t teacher@school.edu -m "Llegó tarde"

All commands read commbook_config.json from the current directory (or
--root) plus the environment overrides documented in commbook.config.
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Sequence

from commbook.config import load_config, resolve_path
from commbook.errors import RosterError, StoreError

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'commbook',
        description = 'commbook: communications notebook report engine',
    )
    parser.add_argument(
        '--root',
        type    = Path,
        default = None,
        help    = 'Project root holding commbook_config.json (default: cwd)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    sub = parser.add_subparsers(dest='command', required=True)

    run = sub.add_parser('run', help='Run one report tick now')
    run.add_argument(
        '--dry-run',
        action  = 'store_true',
        help    = 'Print the e-mails that would be sent; send and write nothing',
    )

    serve = sub.add_parser('serve', help='Start the HTTP trigger server')
    serve.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
    serve.add_argument('--port', type=int, default=8000, help='Port to bind (default: 8000)')

    sub.add_parser('cron', help='Call the HTTP trigger on the configured schedule')

    add = sub.add_parser('add', help='Record a communication')
    add.add_argument('--student', '-s', required=True, action='append',
                     help='Student enrolment (repeat for a multi-student incident)')
    add.add_argument('--subject', '-j', required=True, help='Subject code')
    add.add_argument('--teacher', '-t', required=True, help='Teacher e-mail')
    add.add_argument('--message', '-m', required=True, help='Message category')
    add.add_argument('--comment', '-c', default='', help='Free-text comment')
    add.add_argument('--action-taken', default=None, help='Action taken')
    add.add_argument('--at', default=None,
                     help='Incident time, ISO-8601 (default: now)')
    return parser


def main(argv: Sequence[str] = None) -> int:
    args = _build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    root = (args.root or Path.cwd()).resolve()
    config = load_config(root)

    if args.command == 'run':
        return _cmd_run(config, root, args.dry_run)
    if args.command == 'serve':
        return _cmd_serve(config, root, args.host, args.port)
    if args.command == 'cron':
        from commbook.scheduler import run_forever
        run_forever(config)
        return 0
    if args.command == 'add':
        return _cmd_add(config, root, args)
    return 2


# ── COMMANDS ─────────────────────────────────────────────────

def _cmd_run(config, root: Path, dry_run: bool) -> int:
    from commbook.orchestrator import ReportOrchestrator

    if dry_run:
        from commbook.mail.base import Mailer

        class _PrintMailer(Mailer):
            def send(self, to, subject, html):
                _ok(f"[dry-run] {subject} → {', '.join(to)}")

        orch = ReportOrchestrator.from_config(config, root, mailer=_PrintMailer())
        orch.watermarks = _ReadOnlyWatermarks(orch.watermarks)
    else:
        orch = ReportOrchestrator.from_config(config, root)

    _step(f"Running report tick ({'dry run' if dry_run else 'live'})...")
    t0 = time.time()
    try:
        result = orch.run()
    except (StoreError, RosterError) as e:
        _print(f"{RED}Report tick failed: {e}{RESET}")
        return 1

    if not result.executed:
        _print(f"{YELLOW}Nothing to do: no recipients or no sender configured.{RESET}")
        return 0

    _ok(f"Tick complete in {_elapsed(t0)}")
    _print(f"  Sent       : {result.sent}")
    _print(f"  Failed     : {result.failures}")
    _print(f"  Digest     : {'yes' if result.digest else 'no'}")
    _print(f"  Weekly     : {result.weekly}")
    _print(f"  Cumulative : {result.cumulative}")
    return 1 if result.failures else 0


def _cmd_serve(config, root: Path, host: str, port: int) -> int:
    import uvicorn

    from commbook.api import build_app

    app = build_app(config, project_root=root)
    _print(f"{BOLD}commbook report trigger{RESET} at {CYAN}http://{host}:{port}/api/cron{RESET}")
    uvicorn.run(app, host=host, port=port, log_level="info")
    return 0


def _cmd_add(config, root: Path, args) -> int:
    from commbook.timewindows import load_timezone
    from commbook.store.communications import CommunicationStore

    tz = load_timezone(config.get("timezone"))
    if args.at:
        at = datetime.fromisoformat(args.at)
        if at.tzinfo is None:
            at = at.replace(tzinfo=tz)
    else:
        at = datetime.now(tz)

    store = CommunicationStore(resolve_path(config, "db_path", root), tz=tz)
    pool_id = None
    if len(args.student) > 1:
        import uuid
        pool_id = uuid.uuid4().hex
    ids: List[int] = store.add_pool(
        args.student, args.subject, args.teacher, args.message, at,
        comment=args.comment, action_taken=args.action_taken, pool_id=pool_id,
    )
    _ok(f"{len(ids)} communication(s) recorded: {', '.join(str(i) for i in ids)}")
    return 0


# ── DRY RUN ──────────────────────────────────────────────────

class _ReadOnlyWatermarks:
    """Reads pass through; writes are logged and dropped."""

    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        if name.startswith(("set", "advance", "remove", "clear")):
            def _drop(key, *a, **kw):
                logger.info(f"[dry-run] skipped {name}({key})")
            return _drop
        return getattr(self.inner, name)


# ── PRINT HELPERS ────────────────────────────────────────────

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    sys.exit(main())
