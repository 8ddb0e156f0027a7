"""Archive production."""

from .archiver import archive_directory, archive_name, iter_archive_entries
from .models import ArchiveEntry

__all__ = ["ArchiveEntry", "archive_directory", "archive_name", "iter_archive_entries"]
