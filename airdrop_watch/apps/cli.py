"""CLI entrypoint for one-shot airdrop fetches.

Examples:
  python -m airdrop_watch.apps.cli fetch
  python -m airdrop_watch.apps.cli fetch --config settings.yaml --raw
  python -m airdrop_watch.apps.cli fetch --summary

``fetch`` performs a single refresh (no cache, no scheduler) and prints the
normalized payload as JSON, or the upstream body untouched with ``--raw``.
"""
from __future__ import annotations
import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv
from loguru import logger

from airdrop_watch.airdrops.collector import AirdropCollector, UpstreamError
from airdrop_watch.airdrops.service import AirdropService
from airdrop_watch.apps.server import setup_logging
from airdrop_watch.core.config import ConfigError, load_settings


async def _fetch(settings, raw: bool) -> dict:
    if raw:
        collector = AirdropCollector(settings.upstream)
        try:
            return await collector.fetch()
        finally:
            await collector.close()
    service = AirdropService(settings)
    try:
        snap = await service.refresh()
        return snap.data
    finally:
        await service.close()


def _summary_lines(payload: dict):
    for a in payload.get('airdrops', []):
        when = f"{a.get('date') or '----------'} {a.get('time') or '--:--'}"
        yield f"{when} | {str(a.get('token')):<12} | {a.get('status')} (upstream: {a.get('original_status')})"


def cmd_fetch(args) -> int:
    settings = load_settings(args.config)
    try:
        payload = asyncio.run(_fetch(settings, args.raw))
    except UpstreamError as e:
        logger.error(f"Fetch failed: {e}")
        return 1
    if args.summary:
        for line in _summary_lines(payload):
            print(line)
        if not payload.get('airdrops'):
            print("No airdrops in feed")
    else:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Airdrop Watch CLI")
    ap.add_argument('--config', default=None, help="Path to settings YAML (defaults + env when omitted)")
    ap.add_argument('--log-level', default='WARNING')
    sub = ap.add_subparsers(dest='cmd', required=True)
    f = sub.add_parser('fetch', help="Fetch and print the airdrop feed once")
    f.add_argument('--raw', action='store_true', help="Print the upstream body without normalization")
    f.add_argument('--summary', action='store_true', help="One line per airdrop instead of JSON")
    f.set_defaults(func=cmd_fetch)
    return ap


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        return args.func(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main())
