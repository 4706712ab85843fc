"""issuebot operator CLI.

Subcommands:
  event        -> route one webhook payload (JSON file or stdin) synchronously
  bulk         -> relabel every issue of a repository for one installation
  next-sprint  -> print the sprint that follows a ``YYYY-MM-DD - YYYY-MM-DD`` name

The HTTP front end calls :mod:`issuebot.dispatch` directly; this entry point
exists for operators replaying deliveries and for cron-driven bulk runs.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from issuebot.config import BotConfig, load_config
from issuebot.dispatch import Dispatcher, verify_shared_secret, verify_signature
from issuebot.errors import ConfigError
from issuebot.logging import configure_logging
from issuebot.sprint import next_sprint_name

CONFIG_DEFAULT = "issuebot.config.yaml"
EXIT_UNAUTHORIZED = 2

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(prog="issuebot", description="GitHub issue and sprint board bot")
    p.add_argument(
        "--config",
        help=f"YAML configuration file (default: {CONFIG_DEFAULT} when present)",
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and errors (env: ISSUEBOT_QUIET=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    ev = sub.add_parser("event", help="Route a webhook payload")
    ev.add_argument("--payload", default="-", help="Payload JSON file ('-' for stdin)")
    ev.add_argument("--signature", help="X-Hub-Signature header to verify against the body")

    bulk = sub.add_parser("bulk", help="Relabel every issue of a repository")
    bulk.add_argument("--installation", required=True, help="GitHub App installation id")
    bulk.add_argument(
        "--repo-url", required=True, help="API URL of the repository (.../repos/owner/name)"
    )
    bulk.add_argument("--authorization", help="Authorization header value for the shared secret")

    ns = sub.add_parser("next-sprint", help="Print the sprint following NAME")
    ns.add_argument("name")
    return p


def _read_payload(source: str) -> bytes:
    if source == "-":
        return sys.stdin.buffer.read()
    return Path(source).read_bytes()


def _prepare_config(args: argparse.Namespace) -> BotConfig:
    path = args.config
    if path is None and Path(CONFIG_DEFAULT).exists():
        path = CONFIG_DEFAULT
    return load_config(path)


def _cmd_event(cfg: BotConfig, args: argparse.Namespace) -> int:
    body = _read_payload(args.payload)
    if cfg.webhook_secret and not verify_signature(body, args.signature, cfg.webhook_secret):
        print("[event] signature mismatch", file=sys.stderr)
        return EXIT_UNAUTHORIZED
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        print(f"[event] payload is not JSON: {exc}", file=sys.stderr)
        return 1
    with Dispatcher(cfg) as dispatcher:
        handled = dispatcher.handle_payload(payload)
    sys.stdout.write(json.dumps({"handled": handled}) + "\n")
    return 0


def _cmd_bulk(cfg: BotConfig, args: argparse.Namespace) -> int:
    if cfg.shared_secret and not verify_shared_secret(args.authorization, cfg.shared_secret):
        print("[bulk] unauthorized", file=sys.stderr)
        return EXIT_UNAUTHORIZED
    with Dispatcher(cfg) as dispatcher:
        future = dispatcher.schedule_bulk_update(args.installation, args.repo_url)
        count = future.result()
    print(f"[bulk] labelled {count} issues")
    return 0


def _cmd_next_sprint(args: argparse.Namespace) -> int:
    name = next_sprint_name(args.name)
    if name is None:
        print(f"[next-sprint] not a sprint name: {args.name!r}", file=sys.stderr)
        return 1
    print(name)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.quiet and os.environ.get("ISSUEBOT_QUIET") == "1":
        args.quiet = True
    if args.cmd == "next-sprint":
        return _cmd_next_sprint(args)
    try:
        cfg = _prepare_config(args)
    except ConfigError as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return 1
    configure_logging(
        json_logging=cfg.logging_json_enabled,
        level="WARNING" if args.quiet else cfg.logging_level,
    )
    if args.cmd == "event":
        return _cmd_event(cfg, args)
    if args.cmd == "bulk":
        return _cmd_bulk(cfg, args)
    parser.print_help()  # pragma: no cover - argparse enforces valid choices
    return 1  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
