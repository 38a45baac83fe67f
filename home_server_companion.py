#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Home Server Companion command line.

  --serve            run the web UI (uvicorn)
  --test SERVICE     connection test with the saved url/key
  --show SERVICE     fetch once and print the panel as text
  --watch SERVICE    keep printing the panel on the service's poll cadence
"""
from __future__ import annotations

import argparse
import asyncio
import html
import re
import sys
from pathlib import Path
from typing import Optional

from _config import SERVICES, SETTINGS_PATH, load_settings
from _logging import log
from _polling import start_polling
from _render import Node
from _surfaces import Companion, Surface
from modules._mod_base import ConfigError, __VERSION__

ANSI_G = "\033[92m"
ANSI_R = "\033[91m"
ANSI_X = "\033[0m"

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

WATCH_FALLBACK_MS = 5000


def build_parser(include_examples: bool = False) -> argparse.ArgumentParser:
    epilog_examples = """Examples

  Start the web UI:
    ./home_server_companion.py --serve --bind 0.0.0.0:8787

  Check that Sonarr answers with the saved key:
    ./home_server_companion.py --test sonarr

  Follow the SABnzbd queue in the terminal:
    ./home_server_companion.py --watch sabnzbd
"""
    ap = argparse.ArgumentParser(
        prog="home_server_companion.py",
        description="Dashboard and controls for SABnzbd, Sonarr, Radarr, Tautulli, Overseerr, Prowlarr and Unraid.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=epilog_examples if include_examples else None,
    )
    ap.add_argument("--serve", action="store_true", help="Run the web UI")
    ap.add_argument("--bind", default="0.0.0.0:8787", help="Bind host:port for --serve (default 0.0.0.0:8787)")
    ap.add_argument("--test", choices=SERVICES, metavar="SERVICE", help="Test the connection to one service")
    ap.add_argument("--show", choices=SERVICES, metavar="SERVICE", help="Print one service panel and exit")
    ap.add_argument("--watch", choices=SERVICES, metavar="SERVICE", help="Print one service panel on every refresh")
    ap.add_argument("--config", type=Path, default=None, help=f"Settings file (default {SETTINGS_PATH})")
    ap.add_argument("--debug", action="store_true", help="Enable verbose logging")
    ap.add_argument("--version", action="store_true", help="Print version info and exit")
    return ap


def parse_bind(bind: str) -> tuple:
    host, port = "0.0.0.0", 8787
    if ":" in bind:
        host, p = bind.rsplit(":", 1)
        try:
            port = int(p)
        except ValueError:
            raise SystemExit(f"[!] Invalid port in --bind: {p!r}")
    elif bind:
        host = bind
    return host or "0.0.0.0", port


def node_text(node: Node) -> str:
    return _WS_RE.sub(" ", html.unescape(_TAG_RE.sub(" ", node.body))).strip()


def panel_text(surface: Surface) -> str:
    lines = []
    if surface.error:
        lines.append(f"{ANSI_R}[!] {surface.error}{ANSI_X}")
    for name, region in surface.visible_regions().items():
        if not region.nodes:
            continue
        lines.append(f"== {name} ==")
        for n in region.nodes:
            lines.append(f"  {node_text(n)}")
            for child in n.children:
                lines.append(f"    - {node_text(child)}")
    return "\n".join(lines)


def run_test(companion: Companion, service: str) -> int:
    res = companion.client_for(service).test_connection()
    colour = ANSI_G if res.ok else ANSI_R
    print(f"{colour}{service}: {res.message}{ANSI_X}")
    return 0 if res.ok else 1


async def run_show(companion: Companion, service: str) -> int:
    s = companion.surface(service)
    try:
        await s.refresh()
    except Exception as e:
        print(f"{ANSI_R}[!] {service}: {e}{ANSI_X}")
        return 1
    print(panel_text(s))
    return 0


async def run_watch(companion: Companion, service: str) -> None:
    s = companion.surface(service)

    async def refresh_and_print() -> None:
        try:
            await s.refresh()
        finally:
            print("\033[2J\033[H" + panel_text(s), flush=True)

    await start_polling(refresh_and_print, s.period_ms or WATCH_FALLBACK_MS, s.handle)
    try:
        await asyncio.Event().wait()
    finally:
        companion.shutdown()


def main(argv: Optional[list] = None) -> int:
    args_in = sys.argv[1:] if argv is None else argv
    if any(h in args_in for h in ("-h", "--help")):
        build_parser(include_examples=True).print_help()
        return 0

    ap = build_parser()
    if not args_in:
        ap.print_help()
        return 0
    args = ap.parse_args(args_in)

    if args.version:
        print(f"Home Server Companion version: {__VERSION__}")
        return 0

    if args.debug:
        log.set_level("debug")

    if args.serve:
        from webapp import main as serve
        host, port = parse_bind(args.bind)
        serve(host=host, port=port, settings_path=args.config)
        return 0

    try:
        companion = Companion(load_settings(args.config), settings_path=args.config)
        if args.test:
            return run_test(companion, args.test)
        if args.show:
            return asyncio.run(run_show(companion, args.show))
        if args.watch:
            asyncio.run(run_watch(companion, args.watch))
            return 0
    except ConfigError as e:
        print(f"{ANSI_R}[!] {e}{ANSI_X}")
        return 2
    except KeyboardInterrupt:
        return 0

    ap.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
