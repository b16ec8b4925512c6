"""Command line driver for flattening an image archive."""

import argparse
import asyncio
import logging
from pathlib import Path

from . import __version__
from .core.types import FlattenConfig
from .exceptions import FlattenError
from .flatten import flatten_image_archive
from .utils.digest import content_layer_id, random_layer_id

logger = logging.getLogger("image_flattener")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-flattener",
        description="Squash a multi-layer image saved with `docker save` into one layer.",
        epilog="Usage example: image-flattener -i image.tar -o flat.tar -n myimage:1.0",
    )
    parser.add_argument(
        "-i",
        "--image",
        required=True,
        type=Path,
        help="The input image archive (usually exported by `docker save`).",
    )
    parser.add_argument(
        "-o",
        "--output",
        required=True,
        type=Path,
        help="The output image archive file name (for use in `docker load`).",
    )
    parser.add_argument(
        "-n",
        "--name",
        required=True,
        help="The combined image's 'name:version' pair.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed for each archive operation (default: no limit).",
    )
    parser.add_argument(
        "--content-id",
        action="store_true",
        help="Derive the new layer ID from the layer archive digest instead of randomly.",
    )
    parser.add_argument(
        "--work-dir",
        type=Path,
        default=None,
        help="Directory to create a fresh scratch directory in "
        "(default: <output stem>_temp next to the output, emptied first).",
    )
    parser.add_argument(
        "--keep-temp",
        action="store_true",
        help="Keep the scratch directory after a successful run.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def log_progress(stage: str, message: str) -> None:
    logger.info("[%s] %s", stage, message)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config = FlattenConfig(
        timeout=args.timeout,
        layer_id_factory=content_layer_id if args.content_id else random_layer_id,
        work_dir=args.work_dir,
        keep_work_dir=args.keep_temp,
    )

    try:
        merged = asyncio.run(
            flatten_image_archive(
                args.image, args.output, args.name, config=config, progress=log_progress
            )
        )
    except (FlattenError, OSError) as e:
        logger.error("Flattening failed: %s", e)
        return 1

    logger.info("Wrote %s as %s (layer %s)", args.output, args.name, merged.layer_id)
    return 0

