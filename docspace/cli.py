"""Command-line front door for docspace.

Runs the HTTP server, manages the space registry, prints space trees, and
mirrors a space from a running server.
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from dataclasses import replace
from pathlib import Path

from .client.cache import CacheChange
from .client.push import PushListener
from .client.session import WorkspaceSession
from .client.transport import HttpTransport, Transport
from .config import Settings, load_settings
from .errors import DocspaceError
from .log import configure_logging
from .server.events import ChangeHub
from .server.http import make_server
from .server.service import WorkspaceService
from .server.watcher import SpaceWatcher
from .spaces import SpaceRegistry
from .tree_model.fs import build_space_tree
from .tree_model.types import FolderNode, TreeNode

logger = logging.getLogger(__name__)


def _port(value: str) -> int:
    """argparse type for TCP ports (0 picks a free one)."""
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from exc
    if not 0 <= parsed <= 65535:
        raise argparse.ArgumentTypeError("port must be between 0 and 65535")
    return parsed


def render_tree_lines(node: TreeNode, depth: int = 0) -> list[str]:
    """Indented text rows for ``node`` and its descendants; folders end in ``/``."""
    rows: list[str] = []
    if depth > 0:
        label = f"{node.name}/" if isinstance(node, FolderNode) else node.name
        rows.append("  " * (depth - 1) + label)
    if isinstance(node, FolderNode):
        for child in node.children:
            rows.extend(render_tree_lines(child, depth + 1))
    return rows


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docspace", description="Document spaces with live tree sync.")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json.")
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory holding spaces.json and documents.")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API and event stream.")
    serve.add_argument("--host", default=None, help="Bind address.")
    serve.add_argument("--port", type=_port, default=None, help="Bind port.")
    serve.add_argument("--no-watch", action="store_true", help="Do not poll spaces for external changes.")

    spaces = commands.add_parser("spaces", help="Manage registered spaces.")
    space_commands = spaces.add_subparsers(dest="spaces_command", required=True)
    space_commands.add_parser("list", help="List registered spaces.")
    add = space_commands.add_parser("add", help="Register a space.")
    add.add_argument("name")
    add.add_argument("path", nargs="?", type=Path, default=None, help="Existing directory (default: data dir).")
    remove = space_commands.add_parser("remove", help="Unregister a space; its directory stays on disk.")
    remove.add_argument("space", help="Space id or name.")

    tree = commands.add_parser("tree", help="Print the ordered tree of a space.")
    tree.add_argument("space", help="Space id or name.")
    tree.add_argument("--hidden", action="store_true", help="Include hidden system folders.")

    watch = commands.add_parser("watch", help="Mirror a space from a running server and print every change.")
    watch.add_argument("space", help="Space id or name.")
    watch.add_argument("--host", default=None, help="Server address.")
    watch.add_argument("--port", type=_port, default=None, help="Server port.")
    return parser


def _settings_for(args: argparse.Namespace, settings: Settings | None) -> Settings:
    resolved = settings if settings is not None else load_settings(args.config)
    if args.data_dir is not None:
        resolved = replace(resolved, data_dir=args.data_dir.expanduser())
    if args.log_level is not None:
        resolved = replace(resolved, log_level=args.log_level.upper())
    return resolved


def _with_address(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply ``--host`` and ``--port`` overrides of the serve and watch commands."""
    return replace(
        settings,
        host=args.host if args.host is not None else settings.host,
        port=args.port if args.port is not None else settings.port,
    )


def _registry(settings: Settings) -> SpaceRegistry:
    return SpaceRegistry(settings.spaces_file, settings.documents_dir)


def serve(settings: Settings, *, watch: bool = True) -> None:
    """Serve until interrupted."""
    registry = _registry(settings)
    hub = ChangeHub(settings.event_queue_size)
    service = WorkspaceService(registry, hub, show_hidden=settings.show_hidden)
    server = make_server(service, settings.host, settings.port)
    watcher = SpaceWatcher(registry, hub, poll_seconds=settings.watch_poll_seconds, show_hidden=settings.show_hidden)
    if watch:
        watcher.start()
    host, port = server.server_address[:2]
    logger.info("serving %d space(s) on http://%s:%s", len(registry.list()), host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
    finally:
        watcher.stop()
        hub.close()
        server.server_close()


def _print_tree(space_name: str, root: FolderNode) -> None:
    print(f"{space_name}/")
    for row in render_tree_lines(root):
        print("  " + row)


def _log_notification(level: str, message: str) -> None:
    logger.log(logging.ERROR if level == "error" else logging.WARNING, message)


def watch(
    settings: Settings,
    space_ref: str,
    *,
    transport: Transport | None = None,
    stop: threading.Event | None = None,
) -> None:
    """Print the tree of ``space_ref`` and reprint it after every change until stopped."""
    client = transport if transport is not None else HttpTransport.from_settings(settings)
    session = WorkspaceSession(client, notify=_log_notification)
    listener = PushListener.from_settings(session, settings)
    stop = stop if stop is not None else threading.Event()

    def reprint(change: CacheChange) -> None:
        root = session.cache.root
        if root is not None:
            _print_tree(session.space_name, root)

    try:
        tree = session.select_space(space_ref)
        _print_tree(session.space_name, tree)
        session.cache.add_listener(reprint)
        listener.start()
        logger.info("watching space %s at %s", session.space_name, settings.base_url)
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        logger.info("interrupted, stopping")
    finally:
        listener.stop()
        session.close()
        if transport is None:
            client.close()


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Parse CLI arguments and run the selected command; returns an exit code."""
    args = build_parser().parse_args(argv)
    resolved = _settings_for(args, settings)
    configure_logging(resolved.log_level)

    try:
        if args.command == "serve":
            serve(_with_address(resolved, args), watch=not args.no_watch)
            return 0

        if args.command == "watch":
            watch(_with_address(resolved, args), args.space)
            return 0

        registry = _registry(resolved)
        if args.command == "spaces":
            if args.spaces_command == "add":
                space = registry.add(args.name, args.path)
                print(f"{space.id}\t{space.name}\t{space.root}")
                return 0
            if args.spaces_command == "remove":
                space = registry.remove(args.space)
                print(f"removed {space.name} ({space.id}), files kept at {space.root}")
                return 0
            for space in registry.list():
                print(f"{space.id}\t{space.name}\t{space.root}")
            return 0

        space = registry.get(args.space)
        root = build_space_tree(
            space.root,
            space_id=space.id,
            space_name=space.name,
            show_hidden=args.hidden or resolved.show_hidden,
        )
        _print_tree(space.name, root)
        return 0
    except DocspaceError as exc:
        print(f"docspace: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
