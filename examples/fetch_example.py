"""Example usage of the oci-fetch library API."""

import asyncio
import logging
import tempfile

from oci_fetch import FetchError, RegistryFetcher, archive_directory, parse_reference

# Set up logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)


async def fetch(reference, scratch_dir):
    """Pull an image into scratch_dir."""
    async with RegistryFetcher(verbose=True) as fetcher:
        return await fetcher.fetch(reference, scratch_dir)


def main():
    reference = parse_reference("docker://registry-1.docker.io/library/alpine:latest")

    with tempfile.TemporaryDirectory(prefix="oci-fetch") as scratch_dir:
        try:
            digest = asyncio.run(fetch(reference, scratch_dir))
        except FetchError as e:
            logger.error(f"Fetch failed: {e}")
            return

        logger.info(f"Fetched {reference} ({digest})")

        with open("alpine.oci", "wb") as sink:
            count = archive_directory(scratch_dir, sink)
        logger.info(f"Wrote {count} files to alpine.oci")


if __name__ == "__main__":
    main()
