"""``python -m adlib_media`` / ``adlib-media`` entry point."""

from __future__ import annotations

import asyncio
import sys

from .cli import parse_args, run
from .config import SCRIPT_NAME, get_resolver_version
from .logging import configure_logging, logging_context, set_global_context


def main() -> None:
    configure_logging()
    set_global_context(app=SCRIPT_NAME)
    args = parse_args()
    with logging_context(command=args.command, resolver_version=get_resolver_version()):
        sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
