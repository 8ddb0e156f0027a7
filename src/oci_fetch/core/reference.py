"""Image reference parsing."""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from ..exceptions import ReferenceParseError

SUPPORTED_SCHEMES = ("docker",)
DEFAULT_TAG = "latest"

DOCKER_HUB_ALIASES = ("docker.io", "index.docker.io")
DOCKER_HUB_REGISTRY = "registry-1.docker.io"

# Repository path components and tags, per the registry reference grammar
COMPONENT_PATTERN = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")


@dataclass(frozen=True)
class ImageReference:
    """Parsed image reference of the form scheme://host/repository[:tag]."""

    scheme: str
    host: str
    repository: str
    tag: Optional[str] = None

    @property
    def reference(self) -> str:
        """Tag to request from the registry."""
        return self.tag or DEFAULT_TAG

    def __str__(self) -> str:
        suffix = f":{self.tag}" if self.tag else ""
        return f"{self.scheme}://{self.host}/{self.repository}{suffix}"


def parse_reference(value: str) -> ImageReference:
    """Parse an image reference string.

    Args:
        value: Reference such as "docker://registry-1.docker.io/library/nginx:latest"

    Returns:
        ImageReference

    Raises:
        ReferenceParseError: If the reference is malformed
    """
    if not isinstance(value, str) or "://" not in value:
        raise ReferenceParseError(
            f"invalid image reference {value!r}: expected scheme://host/repository[:tag]"
        )

    try:
        parts = urlsplit(value)
        parts.port  # raises on a non-numeric port
    except ValueError as e:
        raise ReferenceParseError(f"invalid image reference {value!r}: {e}") from e

    if parts.netloc.endswith(":"):
        raise ReferenceParseError(f"invalid image reference {value!r}: empty port")

    if parts.scheme not in SUPPORTED_SCHEMES:
        raise ReferenceParseError(
            f"invalid image reference {value!r}: unsupported scheme {parts.scheme!r}"
        )
    if not parts.hostname:
        raise ReferenceParseError(f"invalid image reference {value!r}: missing host")
    if parts.username is not None or parts.password is not None:
        raise ReferenceParseError(
            f"invalid image reference {value!r}: credentials are not allowed in the reference"
        )
    if parts.query or parts.fragment or value.endswith(("?", "#")):
        raise ReferenceParseError(
            f"invalid image reference {value!r}: unexpected query or fragment"
        )

    path = parts.path.lstrip("/")
    repository, tag = path, None
    name_start = path.rfind("/") + 1
    if ":" in path[name_start:]:
        repository, tag = path.rsplit(":", 1)
        if not TAG_PATTERN.fullmatch(tag):
            raise ReferenceParseError(
                f"invalid image reference {value!r}: invalid tag {tag!r}"
            )

    if not repository:
        raise ReferenceParseError(
            f"invalid image reference {value!r}: missing repository"
        )
    for component in repository.split("/"):
        if not COMPONENT_PATTERN.fullmatch(component):
            raise ReferenceParseError(
                f"invalid image reference {value!r}: invalid repository {repository!r}"
            )

    host = parts.netloc.lower()
    if host in DOCKER_HUB_ALIASES:
        host = DOCKER_HUB_REGISTRY
    if host == DOCKER_HUB_REGISTRY and "/" not in repository:
        repository = f"library/{repository}"

    return ImageReference(
        scheme=parts.scheme, host=host, repository=repository, tag=tag
    )
