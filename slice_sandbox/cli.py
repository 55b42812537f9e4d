"""
`slicebox` command line front end.

Commands
--------
slicebox open FILE LINE [LINE ...] [--live]   -- slice lines into a sandbox and
                                                 edit it interactively
slicebox refs FILE LINE COLUMN                -- list occurrences of the symbol
                                                 under the cursor
slicebox backups                              -- list backup files on disk
slicebox show-backup PATH                     -- print a backup's original text
slicebox stats [--last-n N]                   -- rolling sync statistics

Line and column numbers are 1-based, as editors show them.

Inside `open`, type one command per line:
  live     toggle live sync
  sync     write the sandbox back now
  status   show region positions
  accept   write back, delete the backup, end the session
  revert   restore the original text, delete the backup, end the session
  quit     end without resolving (the backup stays on disk)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import threading
from datetime import datetime
from typing import Optional

from .config import Config
from .errors import SandboxError
from .providers.documents import FileDocumentStore
from .providers.references import WordReferenceProvider
from .providers.symbols import TreeSitterSymbolProvider
from .regions.grammar import split_buffer
from .sandbox.backup import BackupHandle, BackupStore
from .sandbox.events import Command, EventPump
from .sandbox.metrics import read_sync_stats
from .sandbox.service import SandboxService
from .sandbox.session import SandboxSession
from .sandbox.watcher import ScratchBufferWatcher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def _configure_logging(cfg: Config, verbose: bool) -> None:
    """Console logging (WARNING, or INFO with -v) plus a DEBUG file log."""
    if not logging.root.handlers:
        logging.basicConfig(
            level=logging.WARNING,
            format="%(levelname)s  %(name)s  %(message)s",
        )
        for handler in logging.root.handlers:
            handler.setLevel(logging.INFO if verbose else logging.WARNING)

    pkg_logger = logging.getLogger("slice_sandbox")
    pkg_logger.setLevel(logging.DEBUG)
    try:
        os.makedirs(cfg.LOG_DIR, exist_ok=True)
    except OSError as exc:
        logger.warning("Cannot create log directory %s: %s", cfg.LOG_DIR, exc)
        return
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    fh = logging.FileHandler(
        os.path.join(cfg.LOG_DIR, f"slicebox_{timestamp}.log"), encoding="utf-8"
    )
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%H:%M:%S"
    ))
    pkg_logger.addHandler(fh)


# ---------------------------------------------------------------------------
# open
# ---------------------------------------------------------------------------

def _print_sync_error(session: SandboxSession, error: BaseException) -> None:
    print(f"  live sync failed ({type(error).__name__}): {error}", file=sys.stderr)


def _print_status(session: SandboxSession) -> None:
    print(f"  scratch: {session.buffer_id}")
    print(f"  artifact: {session.artifact_id}")
    print(f"  live sync: {'on' if session.is_live else 'off'}, syncs: {session.sync_count}")
    for region in session.regions:
        print(f"    {region.region_id:<10} lines {region.start_line + 1}-{region.end_line + 1}")
    if session.backup is not None:
        print(f"  backup: {session.backup.path}")
    if session.last_error:
        print(f"  last error: {session.last_error}")


def _pump_stdin(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue) -> None:
    """Read commands on a background thread and hand them to the loop."""
    for line in sys.stdin:
        name = line.strip().lower()
        if name:
            loop.call_soon_threadsafe(queue.put_nowait, Command(name))
    loop.call_soon_threadsafe(queue.put_nowait, Command("quit"))


class _InteractiveCommands:
    """Command handler for one interactive sandbox."""

    def __init__(self, service: SandboxService, session: SandboxSession) -> None:
        self._service = service
        self._session = session
        self.exit_code = 0

    async def __call__(self, command: Command) -> bool:
        key = self._session.session_id
        try:
            if command.name == "live":
                enabled = self._service.toggle_live(key)
                print(f"  live sync {'enabled' if enabled else 'disabled'}")
            elif command.name == "sync":
                await self._service.sync_now(key)
                print("  synced")
                _print_status(self._session)
            elif command.name == "status":
                _print_status(self._session)
            elif command.name == "accept":
                await self._service.accept(key)
                print("  sandbox applied to original file")
                return False
            elif command.name == "revert":
                await self._service.revert(key)
                print("  sandbox discarded and original file restored")
                return False
            elif command.name == "quit":
                if key in self._service.registry and self._session.backup is not None:
                    print(f"  left unresolved; backup kept at {self._session.backup.path}")
                return False
            else:
                print(f"  unknown command: {command.name} "
                      "(live, sync, status, accept, revert, quit)")
        except (SandboxError, OSError) as exc:
            print(f"  error: {exc}", file=sys.stderr)
            self.exit_code = 1
        return True


async def _open_session(args: argparse.Namespace, cfg: Config) -> int:
    documents = FileDocumentStore()
    service = SandboxService(
        cfg, documents, TreeSitterSymbolProvider(documents),
        on_error=_print_sync_error,
    )
    session = await service.slice(args.file, [n - 1 for n in args.lines])
    if session is None:
        print("Nothing to slice.")
        return 1
    if args.live or cfg.LIVE_BY_DEFAULT:
        service.set_live(session.session_id, True)

    print(f"Sandbox {session.session_id} opened with {len(session.regions)} region(s).")
    _print_status(session)
    print("Edit the scratch file; commands: live, sync, status, accept, revert, quit")

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    watcher = ScratchBufferWatcher(service.scratch_dir, loop, queue)
    watcher.start()
    threading.Thread(target=_pump_stdin, args=(loop, queue), daemon=True,
                     name="slicebox-stdin").start()

    handler = _InteractiveCommands(service, session)
    try:
        await EventPump(service, queue, handler).run()
    finally:
        watcher.stop()
        service.shutdown()
    return handler.exit_code


def _cmd_open(args: argparse.Namespace, cfg: Config) -> int:
    if any(n < 1 for n in args.lines):
        print("Line numbers start at 1.", file=sys.stderr)
        return 2
    try:
        return asyncio.run(_open_session(args, cfg))
    except (SandboxError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# refs / backups / stats
# ---------------------------------------------------------------------------

def _cmd_refs(args: argparse.Namespace, cfg: Config) -> int:
    documents = FileDocumentStore()
    provider = WordReferenceProvider(documents, extra_files=args.also)
    artifact_id = os.path.abspath(args.file)
    try:
        locations = asyncio.run(provider.resolve(artifact_id, args.line - 1, args.column - 1))
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not locations:
        print("  (no identifier under the cursor, or no occurrences)")
        return 0
    print(f"\n{len(locations)} location(s)")
    print("-" * 60)
    for loc in locations:
        tag = "def" if loc.is_definition else "ref"
        print(f"  {tag}  {loc.artifact_id}:{loc.line + 1}:{loc.column + 1}")

    same_file = sorted({loc.line + 1 for loc in locations if loc.artifact_id == artifact_id})
    print(f"\nslicebox open {args.file} {' '.join(str(n) for n in same_file)}")
    return 0


def _cmd_backups(args: argparse.Namespace, cfg: Config) -> int:
    paths = BackupStore(cfg.BACKUP_DIR).list_backups()
    if not paths:
        print("  (no backups)")
        return 0
    for path in paths:
        modified = datetime.fromtimestamp(os.path.getmtime(path)).strftime("%Y-%m-%d %H:%M:%S")
        print(f"  {modified}  {path}")
    return 0


def _cmd_show_backup(args: argparse.Namespace, cfg: Config) -> int:
    store = BackupStore(cfg.BACKUP_DIR)
    try:
        text = store.restore(BackupHandle(session_id="", path=args.path))
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    for region_id, code in split_buffer(text):
        print(f"=== {region_id} ===")
        print(code)
    return 0


def _cmd_stats(args: argparse.Namespace, cfg: Config) -> int:
    stats = read_sync_stats(cfg.STATE_DIR, last_n=args.last_n)
    print(f"  Syncs:        {stats['total_syncs']}")
    print(f"  Success rate: {stats['success_rate']:.1f}%")
    print(f"  Dropped:      {stats['dropped']}")
    print(f"  Failed:       {stats['failed']}")
    for outcome, count in stats["outcomes"].items():
        print(f"    {outcome:<10} {count}")
    for error, count in stats["errors"].items():
        print(f"    {error:<28} {count}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slicebox",
        description="Edit slices of a file together and sync them back",
    )
    parser.add_argument("--config", default=None,
                        help="Path to .slicebox.yaml config file")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show INFO logging on the console")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    open_p = subparsers.add_parser("open", help="Slice lines into an interactive sandbox")
    open_p.add_argument("file", help="File to slice")
    open_p.add_argument("lines", nargs="+", type=int, metavar="LINE",
                        help="1-based candidate line numbers")
    open_p.add_argument("--live", action="store_true",
                        help="Start with live sync enabled")
    open_p.set_defaults(func=_cmd_open)

    refs_p = subparsers.add_parser("refs", help="List occurrences of the symbol under the cursor")
    refs_p.add_argument("file")
    refs_p.add_argument("line", type=int)
    refs_p.add_argument("column", type=int)
    refs_p.add_argument("--also", nargs="*", default=[], metavar="FILE",
                        help="Extra files to search")
    refs_p.set_defaults(func=_cmd_refs)

    backups_p = subparsers.add_parser("backups", help="List backup files")
    backups_p.set_defaults(func=_cmd_backups)

    show_p = subparsers.add_parser("show-backup", help="Print a backup's original text")
    show_p.add_argument("path")
    show_p.set_defaults(func=_cmd_show_backup)

    stats_p = subparsers.add_parser("stats", help="Show rolling sync statistics")
    stats_p.add_argument("--last-n", dest="last_n", type=int, default=50,
                         help="Number of recent entries to include (default: 50)")
    stats_p.set_defaults(func=_cmd_stats)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    cfg = Config.load(args.config)
    _configure_logging(cfg, args.verbose)
    return args.func(args, cfg)


if __name__ == "__main__":
    sys.exit(main())
