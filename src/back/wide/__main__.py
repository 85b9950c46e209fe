"""Run the wide backend.

Usage:
    python -m wide --config wide_config.json --root ./project --port 3000
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

import uvicorn

from .api import APIConfig, RegistryError, create_app
from .observability import configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='wide')
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=3000)
    parser.add_argument('--config', type=Path, help='Registry document (default: $WIDE_CONFIG)')
    parser.add_argument('--root', type=Path, help='Workspace root (default: $WIDE_WORKSPACE_ROOT)')
    parser.add_argument('--log-level', default=None)
    parser.add_argument('--include-shell', action=argparse.BooleanOptionalAction, default=True)
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> APIConfig:
    overrides = {}
    if args.config is not None:
        overrides['config_path'] = args.config
    if args.root is not None:
        overrides['workspace_root'] = args.root
    return APIConfig(**overrides)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(level=args.log_level)
    config = build_config(args)
    try:
        app = create_app(config, include_shell=args.include_shell)
    except RegistryError as e:
        logger.error('Cannot start: %s', e)
        return 1
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
