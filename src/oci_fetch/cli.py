"""Command-line interface for oci-fetch."""

import argparse
import asyncio
import logging
import sys
import tempfile
from typing import List, Optional, Tuple

from . import __version__
from .core.reference import ImageReference, parse_reference
from .core.registry_client import RegistryFetcher
from .core.types import Credentials, FetchOptions
from .credentials import prompt_credentials
from .exceptions import FilesystemError, OciFetchError, UsageError
from .tar.archiver import archive_directory

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "oci-fetch"


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad input."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stdout)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> ArgumentParser:
    """Build the argument parser.

    Positional arguments are collected into a single list so flags may
    appear before, between or after them.

    Returns:
        Configured ArgumentParser
    """
    parser = ArgumentParser(
        prog="oci-fetch",
        usage="%(prog)s [flags] docker://HOST/IMAGENAME[:TAG] FILEPATH",
        description=(
            "oci-fetch will fetch an OCI image and store it on the local "
            "filesystem in a .tar.gz file"
        ),
        epilog="example: oci-fetch docker://registry-1.docker.io/library/nginx:latest nginx.oci",
    )
    parser.add_argument("args", nargs="*", metavar="ARG", help=argparse.SUPPRESS)
    parser.add_argument("--username", default="", help="username for pull")
    parser.add_argument("--password", default="", help="password for pull")
    parser.add_argument(
        "--prompt-credentials",
        action="store_true",
        help="prompt for username and password for pull",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="print out debugging information to stderr",
    )
    parser.add_argument(
        "--insecure-allow-http",
        action="store_true",
        help="don't enforce encryption when fetching images",
    )
    parser.add_argument(
        "--insecure-skip-tls-verification",
        action="store_true",
        help="don't perform TLS certificate verification",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _positional_arguments(values: List[str]) -> Tuple[str, str]:
    """Split positionals into (source, destination).

    Raises:
        UsageError: If there are not exactly two
    """
    if len(values) != 2:
        raise UsageError(f"expected 2 arguments, got {len(values)}")
    return values[0], values[1]


async def _fetch(
    options: FetchOptions, reference: ImageReference, scratch_dir: str
) -> str:
    """Fetch reference into scratch_dir and return the manifest digest."""
    credentials = options.credentials
    async with RegistryFetcher(
        credentials.username,
        credentials.password,
        options.insecure_allow_http,
        options.insecure_skip_tls_verification,
        options.debug,
    ) as fetcher:
        return await fetcher.fetch(reference, scratch_dir)


def run(options: FetchOptions) -> None:
    """Fetch options.source and write it to options.destination as .tar.gz.

    The reference is parsed before anything touches the filesystem. The
    scratch directory is removed on every return path, after the archive
    and its output file have been closed.

    Raises:
        OciFetchError: If any step fails
        OSError: If the scratch directory cannot be created or removed
    """
    reference = parse_reference(options.source)

    with tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX) as scratch_dir:
        logger.debug("Using scratch directory %s", scratch_dir)

        if options.prompt_credentials:
            prompt_credentials(options.credentials)

        digest = asyncio.run(_fetch(options, reference, scratch_dir))
        logger.debug("Fetched %s as %s", reference, digest)

        try:
            sink = open(options.destination, "wb")
        except OSError as e:
            raise FilesystemError(
                f"Cannot create {options.destination}: {e.strerror or e}"
            ) from e

        with sink:
            count = archive_directory(scratch_dir, sink)

        logger.debug("Wrote %d files to %s", count, options.destination)


def main(argv: Optional[List[str]] = None) -> int:
    """Run oci-fetch and return the process exit status."""
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)

    try:
        source, destination = _positional_arguments(args.args)
    except UsageError:
        parser.print_help(sys.stdout)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    options = FetchOptions(
        source=source,
        destination=destination,
        credentials=Credentials(args.username, args.password),
        prompt_credentials=args.prompt_credentials,
        debug=args.debug,
        insecure_allow_http=args.insecure_allow_http,
        insecure_skip_tls_verification=args.insecure_skip_tls_verification,
    )

    try:
        run(options)
    except (OciFetchError, OSError) as e:
        print(e, file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
