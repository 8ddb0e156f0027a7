"""Registry API v2 async fetch client.

Fetches a single image into a directory laid out as an OCI image layout::

    oci-layout
    index.json
    blobs/sha256/<manifest, config and layer blobs>
"""

import asyncio
import base64
import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import aiofiles
import aiohttp

from ..exceptions import (
    AuthenticationError,
    BlobDownloadError,
    FetchError,
    ManifestError,
    RegistryConnectionError,
)
from ..utils.digest import blob_path, calculate_digest, validate_digest
from .reference import ImageReference

logger = logging.getLogger(__name__)

OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

MANIFEST_MEDIA_TYPES = (OCI_MANIFEST, DOCKER_MANIFEST)
INDEX_MEDIA_TYPES = (OCI_INDEX, DOCKER_MANIFEST_LIST)
MANIFEST_ACCEPT = ", ".join(MANIFEST_MEDIA_TYPES + INDEX_MEDIA_TYPES)

LAYOUT_VERSION = "1.0.0"
REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"

CHUNK_SIZE = 1024 * 1024  # 1MB

CHALLENGE_PARAM_PATTERN = re.compile(r'(\w+)="([^"]*)"')


def parse_challenge(header: str) -> Tuple[str, Dict[str, str]]:
    """Parse a WWW-Authenticate header.

    Args:
        header: Header value (e.g., 'Bearer realm="https://auth",service="registry"')

    Returns:
        Lower-cased scheme and its parameters
    """
    scheme, _, params = header.strip().partition(" ")
    return scheme.lower(), dict(CHALLENGE_PARAM_PATTERN.findall(params))


def select_platform(index: Dict, platform: str) -> Dict:
    """Pick the manifest descriptor matching platform from an image index.

    Args:
        index: Parsed image index or manifest list
        platform: "os/architecture" or "os/architecture/variant"

    Returns:
        Matching manifest descriptor

    Raises:
        ManifestError: If the index is malformed or no entry matches
    """
    os_name, _, arch = platform.partition("/")
    arch, _, variant = arch.partition("/")

    descriptors = index.get("manifests")
    if not isinstance(descriptors, list):
        raise ManifestError("Image index has no manifests list")

    for descriptor in descriptors:
        if not isinstance(descriptor, dict):
            raise ManifestError(f"Invalid image index entry: {descriptor!r}")
        entry = descriptor.get("platform") or {}
        if not isinstance(entry, dict):
            raise ManifestError(f"Invalid platform in image index: {entry!r}")
        if entry.get("os") != os_name or entry.get("architecture") != arch:
            continue
        if variant and entry.get("variant") != variant:
            continue
        return descriptor

    raise ManifestError(f"No manifest found for platform {platform}")


class RegistryFetcher:
    """Docker Registry API v2 async client that pulls one image to disk."""

    def __init__(
        self,
        username: str = "",
        password: str = "",
        allow_http: bool = False,
        skip_tls_verify: bool = False,
        verbose: bool = False,
        timeout: int = 300,
        platform: str = "linux/amd64",
    ) -> None:
        """Initialize the fetcher. Performs no I/O.

        Args:
            username: Registry username, may be empty
            password: Registry password, may be empty
            allow_http: Fall back to plain HTTP when HTTPS is unavailable
            skip_tls_verify: Don't verify TLS certificates
            verbose: Log every HTTP request at debug level
            timeout: Connect and read timeout in seconds
            platform: Platform selected from multi-platform images
        """
        self.username = username
        self.password = password
        self.allow_http = allow_http
        self.skip_tls_verify = skip_tls_verify
        self.verbose = verbose
        self.timeout = timeout
        self.platform = platform
        self.session: Optional[aiohttp.ClientSession] = None
        self._base_url = ""
        self._authorization: Optional[str] = None

    async def __aenter__(self) -> "RegistryFetcher":
        """Enter async context manager."""
        if not self.session:
            trace_configs = [self._trace_config()] if self.verbose else None
            self.session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=not self.skip_tls_verify),
                timeout=aiohttp.ClientTimeout(
                    total=None, sock_connect=self.timeout, sock_read=self.timeout
                ),
                trace_configs=trace_configs,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    def _trace_config(self) -> aiohttp.TraceConfig:
        async def on_request_start(session, context, params):
            logger.debug("--> %s %s", params.method, params.url)

        async def on_request_end(session, context, params):
            logger.debug(
                "<-- %s %s %s", params.response.status, params.method, params.url
            )

        trace_config = aiohttp.TraceConfig()
        trace_config.on_request_start.append(on_request_start)
        trace_config.on_request_end.append(on_request_end)
        return trace_config

    async def fetch(self, reference: ImageReference, dest_dir: str) -> str:
        """Fetch an image into dest_dir as an OCI image layout.

        Args:
            reference: Parsed image reference
            dest_dir: Existing directory to populate

        Returns:
            Digest of the fetched image manifest

        Raises:
            RegistryConnectionError: If the registry cannot be reached
            AuthenticationError: If the registry rejects the credentials
            ManifestError: If the manifest cannot be retrieved or is unsupported
            BlobDownloadError: If a blob cannot be downloaded
        """
        if self.session is None:
            raise FetchError("Fetcher session is not open")

        layout = Path(dest_dir)
        logger.debug("Fetching %s into %s", reference, layout)

        try:
            await self._ping(reference)

            media_type, digest, body = await self._fetch_manifest(
                reference, reference.reference
            )
            manifest = _load_manifest(body)

            if media_type in INDEX_MEDIA_TYPES:
                descriptor = select_platform(manifest, self.platform)
                child_digest = descriptor.get("digest")
                if not validate_digest(child_digest):
                    raise ManifestError(f"Invalid manifest digest: {child_digest!r}")
                logger.debug("Selected %s for platform %s", child_digest, self.platform)

                media_type, _, body = await self._fetch_manifest(reference, child_digest)
                digest = child_digest
                manifest = _load_manifest(body)

            if media_type not in MANIFEST_MEDIA_TYPES:
                raise ManifestError(f"Unsupported manifest media type: {media_type}")

            config = manifest.get("config")
            layers = manifest.get("layers")
            if not isinstance(config, dict) or not isinstance(layers, list):
                raise ManifestError("Unexpected manifest structure")

            if not validate_digest(digest):
                digest = calculate_digest(body)

            await self._write_file(
                layout / "oci-layout",
                json.dumps({"imageLayoutVersion": LAYOUT_VERSION}).encode("utf-8"),
            )
            await self._write_file(layout / blob_path(digest), body)

            for descriptor in [config] + layers:
                await self._download_blob(reference, descriptor, layout)

            index = {
                "schemaVersion": 2,
                "manifests": [
                    {
                        "mediaType": media_type,
                        "digest": digest,
                        "size": len(body),
                        "annotations": {REF_NAME_ANNOTATION: reference.reference},
                    }
                ],
            }
            await self._write_file(
                layout / "index.json", json.dumps(index, indent=2).encode("utf-8")
            )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RegistryConnectionError(
                f"Failed to fetch {reference}: {str(e) or 'timed out'}"
            ) from e

        logger.debug("Fetched %s (%s)", reference, digest)
        return digest

    def _schemes(self) -> List[str]:
        return ["https", "http"] if self.allow_http else ["https"]

    async def _ping(self, reference: ImageReference) -> None:
        """Find a working transport and authenticate if the registry asks."""
        last_error: Optional[Exception] = None

        for scheme in self._schemes():
            url = f"{scheme}://{reference.host}/v2/"
            try:
                async with self.session.get(url) as resp:
                    challenge = resp.headers.get("WWW-Authenticate", "")
                    status = resp.status
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug("Cannot reach %s: %s", url, e)
                last_error = e
                continue

            self._base_url = f"{scheme}://{reference.host}"
            if status == 401:
                await self._authenticate(challenge, reference)
            return

        raise RegistryConnectionError(
            f"Failed to connect to registry {reference.host}: {last_error}"
        ) from last_error

    def _basic_authorization(self) -> Optional[str]:
        """Build a Basic Authorization header value, or None without credentials."""
        if not self.username and not self.password:
            return None
        if ":" in self.username:
            raise AuthenticationError("Invalid credentials: username must not contain ':'")
        pair = f"{self.username}:{self.password}".encode("utf-8")
        return "Basic " + base64.b64encode(pair).decode("ascii")

    async def _authenticate(self, challenge: str, reference: ImageReference) -> None:
        """Answer a WWW-Authenticate challenge.

        Raises:
            AuthenticationError: If the challenge cannot be satisfied
        """
        scheme, params = parse_challenge(challenge)

        if scheme == "basic":
            authorization = self._basic_authorization()
            if authorization is None:
                raise AuthenticationError(
                    f"Registry {reference.host} requires a username and password"
                )
            self._authorization = authorization
            return

        if scheme != "bearer":
            raise AuthenticationError(
                f"Unsupported authentication scheme from {reference.host}: {challenge!r}"
            )

        realm = params.get("realm")
        if not realm:
            raise AuthenticationError(f"Bearer challenge without realm: {challenge!r}")

        query = {"scope": params.get("scope") or f"repository:{reference.repository}:pull"}
        if params.get("service"):
            query["service"] = params["service"]

        headers = {}
        authorization = self._basic_authorization()
        if authorization:
            headers["Authorization"] = authorization

        async with self.session.get(realm, params=query, headers=headers) as resp:
            if resp.status >= 400:
                raise AuthenticationError(
                    f"Failed to get token from {realm}: HTTP {resp.status}"
                )
            try:
                data = await resp.json(content_type=None)
            except ValueError as e:
                raise AuthenticationError(f"Invalid token response from {realm}") from e

        token = None
        if isinstance(data, dict):
            token = data.get("token") or data.get("access_token")
        if not token:
            raise AuthenticationError(f"No token in response from {realm}")

        self._authorization = f"Bearer {token}"

    async def _send(self, url: str, accept: Optional[str]) -> aiohttp.ClientResponse:
        headers = {}
        if accept:
            headers["Accept"] = accept
        if self._authorization:
            headers["Authorization"] = self._authorization
        return await self.session.get(url, headers=headers)

    async def _get(
        self, url: str, reference: ImageReference, accept: Optional[str] = None
    ) -> aiohttp.ClientResponse:
        """GET url, re-authenticating once on 401.

        Raises:
            AuthenticationError: If access is still denied
        """
        resp = await self._send(url, accept)

        if resp.status == 401 and resp.headers.get("WWW-Authenticate"):
            challenge = resp.headers["WWW-Authenticate"]
            resp.release()
            await self._authenticate(challenge, reference)
            resp = await self._send(url, accept)

        if resp.status in (401, 403):
            resp.release()
            raise AuthenticationError(
                f"Access to {reference.repository} denied: HTTP {resp.status}"
            )

        return resp

    async def _fetch_manifest(
        self, reference: ImageReference, manifest_ref: str
    ) -> Tuple[str, str, bytes]:
        """Retrieve a manifest by tag or digest.

        Returns:
            Media type, digest reported by the registry (may be empty), raw body

        Raises:
            ManifestError: If retrieval fails
        """
        url = f"{self._base_url}/v2/{reference.repository}/manifests/{manifest_ref}"

        async with await self._get(url, reference, accept=MANIFEST_ACCEPT) as resp:
            if resp.status == 404:
                raise ManifestError(
                    f"Manifest {reference.repository}:{manifest_ref} not found"
                )
            if resp.status >= 400:
                raise ManifestError(
                    f"Failed to get manifest {reference.repository}:{manifest_ref}: "
                    f"HTTP {resp.status}"
                )
            body = await resp.read()
            content_type = resp.content_type
            digest = resp.headers.get("Docker-Content-Digest", "")

        try:
            media_type = json.loads(body).get("mediaType") or content_type
        except (ValueError, AttributeError):
            media_type = content_type

        return media_type, digest, body

    async def _download_blob(
        self, reference: ImageReference, descriptor: Dict, layout: Path
    ) -> None:
        """Stream one blob into the layout's blob store.

        Raises:
            BlobDownloadError: If download fails
        """
        digest = descriptor.get("digest") if isinstance(descriptor, dict) else None
        try:
            target = layout / blob_path(digest)
        except ValueError as e:
            raise BlobDownloadError(f"Invalid blob digest: {digest!r}") from e

        if target.exists():
            logger.debug("Blob %s already present", digest)
            return

        target.parent.mkdir(parents=True, exist_ok=True)
        url = f"{self._base_url}/v2/{reference.repository}/blobs/{digest}"

        async with await self._get(url, reference) as resp:
            if resp.status >= 400:
                raise BlobDownloadError(
                    f"Failed to download blob {digest}: HTTP {resp.status}"
                )

            logger.debug("Downloading %s (%s bytes)", digest, descriptor.get("size", "?"))
            async with aiofiles.open(target, "wb") as f:
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    await f.write(chunk)

    async def _write_file(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)


def _load_manifest(body: bytes) -> Dict:
    """Decode a manifest body.

    Raises:
        ManifestError: If the body isn't a supported JSON manifest
    """
    try:
        manifest = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise ManifestError(f"Invalid manifest JSON: {e}") from e

    if not isinstance(manifest, dict):
        raise ManifestError("Manifest must be a JSON object")
    if manifest.get("schemaVersion") == 1:
        raise ManifestError("Schema 1 manifests are not supported")

    return manifest
