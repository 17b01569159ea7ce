#!/usr/bin/env python3
"""
run_reports.py: fully automated report pipeline
Uses commbook_config.json. Run from project root.

  python run_reports.py            # one report tick now
  python run_reports.py --api      # start the trigger API server
  python run_reports.py --cron     # start the scheduler that calls the API

Secrets (SMTP_PASS, CRON_JOB_TOKEN) come from the environment.
"""

import argparse
import logging
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="commbook automated report pipeline")
    parser.add_argument("--api", action="store_true", help="Start API server")
    parser.add_argument("--cron", action="store_true", help="Start scheduler")
    parser.add_argument("--port", type=int, default=8000, help="API port (default: 8000)")
    args = parser.parse_args()

    root = Path(__file__).parent
    sys.path.insert(0, str(root))

    logging.basicConfig(
        level   = logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    from commbook.config import load_config

    config = load_config(root)

    if args.api:
        import uvicorn
        from commbook.api import build_app
        app = build_app(config, project_root=root)
        print(f"Starting API at http://127.0.0.1:{args.port}")
        uvicorn.run(app, host="127.0.0.1", port=args.port, log_level="info")
        return

    if args.cron:
        from commbook.scheduler import run_forever
        run_forever(config)
        return

    from commbook.orchestrator import ReportOrchestrator
    result = ReportOrchestrator.from_config(config, root).run()
    if not result.executed:
        print("Nothing sent: no recipients or sender configured")
        return
    print(f"Done: {result.sent} sent, {result.failures} failed")
    if result.failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
