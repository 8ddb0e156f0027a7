"""Directory to .tar.gz archiver."""

import gzip
import logging
import os
import stat
import tarfile
from typing import BinaryIO, Iterator

from ..exceptions import ArchiveWriteError
from .models import ArchiveEntry

logger = logging.getLogger(__name__)


def archive_name(root: str, path: str) -> str:
    """Name of a file inside the archive.

    Strips the root prefix and normalizes separators. The leftover leading
    separator is stripped too, so "/a/b" becomes "a/b" and no record is
    written with an absolute path.

    Args:
        root: Directory being archived
        path: Path of a file beneath root

    Returns:
        Root-relative, "/" separated name
    """
    name = path[len(root) :] if path.startswith(root) else path
    if os.sep != "/":
        name = name.replace(os.sep, "/")
    return name.lstrip("/")


def _raise_walk_error(error: OSError) -> None:
    raise error


def iter_archive_entries(root: str) -> Iterator[ArchiveEntry]:
    """Walk root depth-first, yielding regular files.

    Directories produce no entries. Symlinks and special files are skipped.

    Args:
        root: Directory to walk

    Yields:
        ArchiveEntry for each regular file, in walk order

    Raises:
        OSError: If a directory cannot be listed or a file cannot be stat'ed
    """
    for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        for filename in filenames:
            path = os.path.join(dirpath, filename)
            info = os.lstat(path)
            if not stat.S_ISREG(info.st_mode):
                logger.debug("Skipping non-regular file %s", path)
                continue

            yield ArchiveEntry(
                name=archive_name(root, path),
                path=path,
                size=info.st_size,
                mode=stat.S_IMODE(info.st_mode),
                mtime=info.st_mtime,
            )


def _write_entry(tar: tarfile.TarFile, entry: ArchiveEntry) -> None:
    """Write one header followed by the file's bytes."""
    header = tarfile.TarInfo(entry.name)
    header.size = entry.size
    header.mode = entry.mode
    header.mtime = int(entry.mtime)
    header.type = tarfile.REGTYPE

    with open(entry.path, "rb") as f:
        tar.addfile(header, fileobj=f)


def archive_directory(root: str, sink: BinaryIO) -> int:
    """Stream every regular file under root into sink as a .tar.gz.

    The tar layer wraps the gzip layer which wraps sink. The tar layer is
    closed first so its trailer reaches the gzip layer, then the gzip layer
    so its footer reaches sink. Closing sink is left to the caller.

    Args:
        root: Directory to archive
        sink: Writable binary file object

    Returns:
        Number of files written

    Raises:
        ArchiveWriteError: If any file cannot be read or the archive cannot be written
    """
    root = os.path.normpath(root)
    count = 0

    try:
        with gzip.GzipFile(fileobj=sink, mode="wb") as gz:
            with tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
                for entry in iter_archive_entries(root):
                    logger.debug("Adding %s (%d bytes)", entry.name, entry.size)
                    _write_entry(tar, entry)
                    count += 1
    except (OSError, tarfile.TarError) as e:
        raise ArchiveWriteError(f"Failed to write archive: {e}") from e

    return count
