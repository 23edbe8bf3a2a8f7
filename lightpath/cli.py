#!/usr/bin/env python3
"""
CLI tool for building and running LightPath projects.
"""

import argparse
import logging
import os
import sys

from lightpath import __version__
from lightpath.config import DEFAULT_DESCRIPTOR, LightPathConfig
from lightpath.errors import LightPathError, MissingDescriptorFileError
from lightpath.main import LightPath


def _build_parser():
    parser = argparse.ArgumentParser(
        prog="lightpath",
        description="Build a project from its build.path descriptor, or run one of its functions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lightpath                    # Run the build block, package if it says 'build'
  lightpath clean              # Run the custom function 'clean'
  lightpath -f other.path      # Use another descriptor
  lightpath --strict           # Report malformed statements instead of skipping them
        """,
    )
    parser.add_argument(
        "function",
        nargs="*",
        help="Custom function to run (omit to build the project)",
    )
    parser.add_argument(
        "-f",
        "--file",
        default=DEFAULT_DESCRIPTOR,
        help=f"Path to the build descriptor (default: {DEFAULT_DESCRIPTOR})",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on malformed statements instead of skipping them",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show every step and command being run",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv=None):
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if len(args.function) > 1:
        parser.print_usage()
        return 0

    config = LightPathConfig.from_env(
        workdir=os.getcwd(), descriptor=args.file, strict=args.strict
    )

    try:
        if not config.descriptor_path.is_file():
            raise MissingDescriptorFileError(args.file)

        model = LightPath(from_file=str(config.descriptor_path), config=config)

        if not args.function:
            artifact = model.build_project()
            if artifact:
                print(f"Built {os.path.relpath(artifact)}")
        else:
            model.run_function(args.function[0])

    except LightPathError as e:
        print(f"Error: {e}")
        return e.exit_code

    return 0


if __name__ == "__main__":
    sys.exit(main())
