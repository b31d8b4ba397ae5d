#!/usr/bin/env python3
"""
StemQueue v1.0.0 — Main entry point.
Queues YouTube videos and local audio files for stem separation.
"""

import sys
import os
import logging
import argparse
from pathlib import Path
from datetime import datetime

# ── Ensure Homebrew paths are in PATH ────────────────────────────────
# When launched from a .app bundle, macOS does NOT source ~/.zshrc, so
# Homebrew's bin directories are missing and demucs/ffmpeg are not found.
HOMEBREW_PATHS = [
    "/opt/homebrew/bin",          # Apple Silicon default
    "/opt/homebrew/sbin",
    "/usr/local/bin",             # Intel Mac default
    "/usr/local/sbin",
]

current_path = os.environ.get("PATH", "")
for p in HOMEBREW_PATHS:
    if os.path.isdir(p) and p not in current_path.split(os.pathsep):
        current_path = p + os.pathsep + current_path
os.environ["PATH"] = current_path

# ── Determine project root ────────────────────────────────────────────
if getattr(sys, 'frozen', False):
    PROJECT_ROOT = Path(getattr(sys, '_MEIPASS', Path(sys.executable).parent))
else:
    PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from stemqueue.core.constants import APP_NAME, APP_VERSION, LOG_DIR, ComputeBackend, JobStatus
from stemqueue.core.config import AppConfig
from stemqueue.core.db_sqlite import Database
from stemqueue.core.diagnostics import get_diagnostics, missing_tools
from stemqueue.core.job_queue import QueueManager
from stemqueue.core.job_runner import JobRunner
from stemqueue.core.status_store import StatusStore
from stemqueue.core.url_parse import parse_inputs, parse_input_file
from stemqueue.core.workspace import ResourceJanitor
from stemqueue.core.yt_metadata import fetch_title

logger = logging.getLogger(APP_NAME)


def setup_logging(verbose: bool = False):
    """Log to <LOG_DIR>/app.log and to stderr."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_DIR / "app.log", encoding="utf-8"),
            logging.StreamHandler(sys.stderr),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME.lower(),
        description="Split songs into bass, drums, other, vocals and instrumental stems.",
    )
    parser.add_argument("inputs", nargs="*",
                        help="YouTube URLs or local audio files, processed in order")
    parser.add_argument("--file", metavar="PATH", action="append", default=[],
                        help="Text file with one URL or audio file per line (repeatable)")
    parser.add_argument("--output", help="Output library folder (saved)")
    parser.add_argument("--backend", choices=[ComputeBackend.AUTO, ComputeBackend.CPU],
                        help="Compute backend for separation (saved)")
    parser.add_argument("--no-donate", action="store_true",
                        help="Never show the donation prompt (saved)")
    parser.add_argument("--forget", metavar="ID", action="append", default=[],
                        help="Forget the status of a job so it can be processed again")
    parser.add_argument("--list", action="store_true", help="List finished jobs and exit")
    parser.add_argument("--diagnostics", action="store_true",
                        help="Print tool and system diagnostics and exit")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def print_status(event):
    if event.status is None:
        print(f"[{event.identity}] removed")
    elif event.result_path:
        print(f"[{event.identity}] {event.status}: {event.result_path}")
    else:
        print(f"[{event.identity}] {event.status}")


def print_donate(_flag):
    print(f"\nEnjoying {APP_NAME}? Consider supporting the project. "
          f"(Disable this message with --no-donate)\n")


def apply_settings(args, config: AppConfig):
    if args.output:
        config.output_root = args.output
    if args.backend:
        config.pytorch_backend = args.backend
    if args.no_donate:
        config.can_show_donate_popup = False


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Frozen: %s", getattr(sys, 'frozen', False))
    logger.info("=" * 60)

    config = AppConfig()
    apply_settings(args, config)

    if args.diagnostics:
        for key, value in get_diagnostics(config).items():
            print(f"{key}: {value}")
        return 0

    db = Database()
    store = StatusStore(db, config)
    janitor = ResourceJanitor()
    janitor.sweep_orphans()
    store.load()

    try:
        for identity in args.forget:
            store.clear(identity)

        if args.list:
            for identity, rec in sorted(store.snapshot().items()):
                print(f"{identity}\t{rec.status}\t{rec.result_path}")
            return 0

        jobs = parse_inputs(args.inputs, title_lookup=fetch_title)
        for list_file in args.file:
            jobs.extend(parse_input_file(Path(list_file).expanduser(), title_lookup=fetch_title))
        if not jobs:
            if not args.forget:
                print("Nothing to do.", file=sys.stderr)
            return 0

        missing = missing_tools()
        if missing:
            logger.error("Missing tools. PATH = %s", os.environ.get("PATH", ""))
            print("Missing required tools: " + ", ".join(missing), file=sys.stderr)
            return 1

        store.status_changed.subscribe(print_status)
        store.donate_suggested.subscribe(print_donate)

        manager = QueueManager(store, JobRunner(store, config, janitor=janitor))
        manager.start()
        try:
            accepted = manager.submit(jobs)
            skipped = len(jobs) - len(accepted)
            if skipped:
                print(f"Skipping {skipped} job(s) already done or failed "
                      f"(use --forget ID to redo them)")
            manager.wait_until_idle()
        except KeyboardInterrupt:
            print("\nInterrupted, stopping current job...", file=sys.stderr)
        finally:
            manager.stop(timeout=30)

        failed = [j.identity for j in jobs if store.get_status(j.identity) == JobStatus.ERROR]
        return 1 if failed else 0
    except Exception as e:
        logger.critical("Fatal error: %s: %s", type(e).__name__, e, exc_info=True)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
