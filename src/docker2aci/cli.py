"""Command-line entry point."""

import argparse
import asyncio
import logging
import os
import sys

from .core.types import ConverterConfig
from .exceptions import Docker2ACIError
from .pipeline import convert

logger = logging.getLogger("docker2aci")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docker2aci",
        description="Convert a Docker registry image into a chain of ACIs.",
    )
    parser.add_argument("image", metavar="[REGISTRYURL/]IMAGE_NAME[:TAG]")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=os.getenv("DOCKER2ACI_LOG_LEVEL", "WARNING").upper(),
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = ConverterConfig.from_env()
        image_id = asyncio.run(convert(args.image, config=config))
    except Docker2ACIError as e:
        logger.debug("Conversion of %s failed", args.image, exc_info=True)
        print(f"Error converting {args.image}: {e}", file=sys.stderr)
        return 1

    print(image_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
