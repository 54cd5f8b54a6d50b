#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys

from token_admission_bundle.utils.env_loader import ensure_env_template, load_env_first_found

from .errors import AdmissionError
from .utils_exec import load_config, setup_logging


def _parse_args(argv=None):
    p = argparse.ArgumentParser(description="Token admission service")
    p.add_argument("-c", "--config", dest="config", default=None,
                   help="Path to config.yaml (optional; will use AppData default if omitted)")
    sub = p.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the HTTP admission API")
    sub.add_parser("init-env", help="Write a skeleton .env into the app data directory")
    s = sub.add_parser("search", help="Resolve a token query and print ranked candidates")
    s.add_argument("query")
    s.add_argument("--network", default=None)
    return p.parse_args(argv)


async def _search(cfg: dict, query: str, network) -> dict:
    from .pipeline import AdmissionPipeline

    pipeline = AdmissionPipeline.from_config(cfg)
    await pipeline.start()
    try:
        result = await pipeline.search(query, network)
    finally:
        await pipeline.close()
    return result.to_dict()


def main(argv=None) -> int:
    args = _parse_args(argv)
    load_env_first_found()
    cfg = load_config(args.config)
    logger = setup_logging(cfg)

    command = args.command or "serve"
    try:
        if command == "init-env":
            print(ensure_env_template())
            return 0
        if command == "search":
            print(json.dumps(asyncio.run(_search(cfg, args.query, args.network)), indent=2))
            return 0
        from .server import run

        run(cfg)
        return 0
    except AdmissionError as e:
        logger.error("%s", e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
