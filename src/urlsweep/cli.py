"""Command line entry point."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from .background import Background, LocalMessenger
from .config import API_HOST, API_PORT, RULES_OUT
from .engine.ruleset import JsonRuleSink, MemoryRuleSink
from .errors import InvalidURL
from .logging import get_logger, setup_logging
from .scrubber.cleaner import purify
from .settings import normalize_domain
from .store.store import Store

logger = get_logger(__name__)


def _background(store_dir: Optional[str], rules_out: Optional[str]) -> Background:
    store = Store(Path(store_dir) if store_dir else None)
    sink = JsonRuleSink(Path(rules_out)) if rules_out else MemoryRuleSink()
    return Background(store, sink=sink)


async def _sync(args) -> int:
    background = _background(args.store, args.rules_out)
    try:
        result = await background.orchestrator.synchronize(force_fetch=args.force)
    finally:
        await background.orchestrator.feed_client.aclose()
    print(json.dumps(result.model_dump(), indent=2))
    return 0


async def _purify(args) -> int:
    background = _background(args.store, None)
    state = await background.get_state(None)
    try:
        cleaned = purify(args.url, state["trackers"])
    except InvalidURL:
        print("Invalid URL format", file=sys.stderr)
        return 1
    if cleaned is not None:
        print(cleaned)
    return 0


async def _stats(args) -> int:
    background = _background(args.store, None)
    if args.reset:
        await background.stats.reset()
    print(json.dumps(await background.stats.summary(), indent=2))
    return 0


async def _install(args) -> int:
    background = _background(args.store, args.rules_out)
    try:
        result = await background.orchestrator.on_installed()
    finally:
        await background.orchestrator.feed_client.aclose()
    print(json.dumps(result.model_dump(), indent=2))
    return 0


async def _allow(args) -> int:
    settings = _background(args.store, None).settings
    if args.action != "list" and not normalize_domain(args.domain):
        print(f"allow {args.action} needs a domain", file=sys.stderr)
        return 2
    if args.action == "add":
        await settings.add_allowed_domain(args.domain)
    elif args.action == "remove":
        if not await settings.remove_allowed_domain(args.domain):
            print(f"{args.domain} is not in the allowlist", file=sys.stderr)
            return 1
    elif args.action == "toggle":
        await settings.toggle_site(args.domain)
    print(json.dumps(await settings.allowlist(), indent=2))
    return 0


async def _params(args) -> int:
    settings = _background(args.store, None).settings
    if args.action == "add":
        await settings.add_custom_parameters(",".join(args.values))
    elif args.action == "remove":
        missing = [param for param in args.values if not await settings.remove_custom_parameter(param)]
        if missing:
            print(f"Not custom parameters: {', '.join(missing)}", file=sys.stderr)
            return 1
    print(json.dumps(await settings.custom_parameters(), indent=2))
    return 0


async def _toggle(args) -> int:
    settings = _background(args.store, None).settings
    await settings.set_globally_disabled(args.command == "disable")
    state = "disabled" if await settings.is_globally_disabled() else "enabled"
    print(f"Tracking-parameter removal {state}")
    return 0


async def _backup(args) -> int:
    settings = _background(args.store, None).settings
    if args.action == "export":
        text = json.dumps(await settings.export_backup(), indent=2)
        if args.file:
            Path(args.file).write_text(text, encoding="utf-8")
        else:
            print(text)
        return 0

    if not args.file:
        print("backup import needs a file", file=sys.stderr)
        return 2
    try:
        backup = json.loads(Path(args.file).read_text(encoding="utf-8"))
        await settings.import_backup(backup)
    except (OSError, ValueError) as e:
        print(f"Import failed: {e}", file=sys.stderr)
        return 1
    print("Backup imported")
    return 0


async def _watch(args) -> int:
    # Imported here so the other commands work without Playwright browsers installed
    from .clients.browser_client import BrowserClient

    background = _background(args.store, args.rules_out)
    background.attach()
    try:
        await background.start()
        final_url = await BrowserClient(headless=not args.headed).watch(
            args.url,
            LocalMessenger(background),
            duration=args.duration,
            store=background.store,
        )
    finally:
        await background.aclose()
    print(final_url)
    return 0


def _serve(args) -> int:
    import uvicorn

    uvicorn.run("urlsweep.api.main:build_default_app", factory=True, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="urlsweep", description="Remove tracking parameters from URLs")
    parser.add_argument("--store", default=None, help="Store directory (default: STORE_DIR)")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="Synchronize the compiled rule set")
    p.add_argument("--force", action="store_true", help="Refetch upstream even if fresh")
    p.add_argument("--rules-out", default=RULES_OUT or None, help="Write compiled rules to this JSON file")
    p.set_defaults(handler=_sync)

    p = sub.add_parser("purify", help="Strip tracking parameters from one URL")
    p.add_argument("url")
    p.set_defaults(handler=_purify)

    p = sub.add_parser("stats", help="Show usage statistics")
    p.add_argument("--reset", action="store_true")
    p.set_defaults(handler=_stats)

    p = sub.add_parser("install", help="Seed default settings and force a first sync")
    p.add_argument("--rules-out", default=RULES_OUT or None)
    p.set_defaults(handler=_install)

    p = sub.add_parser("allow", help="Edit the allowlist")
    p.add_argument("action", choices=["list", "add", "remove", "toggle"])
    p.add_argument("domain", nargs="?", default="")
    p.set_defaults(handler=_allow)

    p = sub.add_parser("params", help="Edit custom tracking parameters")
    p.add_argument("action", choices=["list", "add", "remove"])
    p.add_argument("values", nargs="*")
    p.set_defaults(handler=_params)

    for name, help_text in (("disable", "Suspend all removal"), ("enable", "Resume removal")):
        p = sub.add_parser(name, help=help_text)
        p.set_defaults(handler=_toggle)

    p = sub.add_parser("backup", help="Export or import settings and statistics")
    p.add_argument("action", choices=["export", "import"])
    p.add_argument("file", nargs="?", default=None)
    p.set_defaults(handler=_backup)

    p = sub.add_parser("watch", help="Open a page and scrub its address")
    p.add_argument("url")
    p.add_argument("--duration", type=float, default=None, help="Seconds to watch")
    p.add_argument("--headed", action="store_true")
    p.add_argument("--rules-out", default=RULES_OUT or None)
    p.set_defaults(handler=_watch)

    p = sub.add_parser("serve", help="Run the background API")
    p.add_argument("--host", default=API_HOST)
    p.add_argument("--port", type=int, default=API_PORT)
    p.set_defaults(handler=_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    if args.command == "serve":
        return _serve(args)
    return asyncio.run(args.handler(args))


if __name__ == "__main__":
    sys.exit(main())
