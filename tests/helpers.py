"""Test helpers: filesystem trees, archive decoding and an in-process registry."""

import base64
import io
import json
import os
import tarfile

from aiohttp import web

from oci_fetch.core.registry_client import OCI_INDEX, OCI_MANIFEST
from oci_fetch.utils.digest import calculate_digest


def build_tree(root, files):
    """Create files under root.

    Args:
        root: Directory to populate
        files: Mapping of relative path to (content, mode)
    """
    for name, (content, mode) in files.items():
        path = os.path.join(root, *name.split("/"))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)
        os.chmod(path, mode)


def read_archive(data: bytes) -> dict:
    """Decode a .tar.gz into {name: (content, mode)}."""
    members = {}
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
        for member in tar:
            assert member.isfile(), f"unexpected non-file member {member.name}"
            members[member.name] = (tar.extractfile(member).read(), member.mode)
    return members


class FakeRegistry:
    """Minimal registry:2 lookalike serving manifests and blobs from memory."""

    def __init__(self, username=None, password=None, auth=False, token="t0k", basic=False):
        self.username = username
        self.password = password
        self.auth = auth or username is not None
        self.token = token
        self.basic = basic
        self.manifests = {}
        self.blobs = {}
        self.scopes = []
        self.blob_requests = []

    def add_blob(self, data: bytes, media_type="application/octet-stream") -> dict:
        digest = calculate_digest(data)
        self.blobs[digest] = data
        return {"mediaType": media_type, "digest": digest, "size": len(data)}

    def add_manifest(self, repository, tag, manifest, media_type=OCI_MANIFEST):
        body = json.dumps(manifest).encode("utf-8")
        digest = calculate_digest(body)
        entry = (media_type, body, digest)
        self.manifests[(repository, digest)] = entry
        if tag:
            self.manifests[(repository, tag)] = entry
        return digest, body

    def add_image(self, repository, tag, layers, config=None, media_type=OCI_MANIFEST):
        config = config or {"architecture": "amd64", "os": "linux"}
        manifest = {
            "schemaVersion": 2,
            "mediaType": media_type,
            "config": self.add_blob(
                json.dumps(config).encode("utf-8"),
                "application/vnd.oci.image.config.v1+json",
            ),
            "layers": [
                self.add_blob(layer, "application/vnd.oci.image.layer.v1.tar+gzip")
                for layer in layers
            ],
        }
        digest, body = self.add_manifest(repository, tag, manifest, media_type)
        return digest, manifest, body

    def add_index(self, repository, tag, platforms):
        """Add an image index; platforms maps "os/arch" to (digest, body)."""
        manifests = []
        for platform, (digest, body) in platforms.items():
            os_name, arch = platform.split("/")
            manifests.append(
                {
                    "mediaType": OCI_MANIFEST,
                    "digest": digest,
                    "size": len(body),
                    "platform": {"os": os_name, "architecture": arch},
                }
            )
        index = {"schemaVersion": 2, "mediaType": OCI_INDEX, "manifests": manifests}
        return self.add_manifest(repository, tag, index, OCI_INDEX)

    def _challenge(self, request):
        if self.basic:
            challenge = 'Basic realm="fake"'
        else:
            challenge = f'Bearer realm="{request.url.origin()}/token",service="fake"'
        return web.Response(status=401, headers={"WWW-Authenticate": challenge})

    def _valid_basic(self, header):
        scheme, _, encoded = header.partition(" ")
        if scheme != "Basic":
            return False
        try:
            decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
        except ValueError:
            return False
        return decoded == f"{self.username}:{self.password}"

    def _authorized(self, request):
        if not self.auth:
            return True
        header = request.headers.get("Authorization", "")
        if self.basic:
            return self._valid_basic(header)
        return header == f"Bearer {self.token}"

    async def ping(self, request):
        if not self._authorized(request):
            return self._challenge(request)
        return web.json_response({})

    async def issue_token(self, request):
        self.scopes.append(request.query.get("scope"))
        if self.username is not None:
            if not self._valid_basic(request.headers.get("Authorization", "")):
                return web.Response(status=401)
        return web.json_response({"token": self.token})

    async def get_manifest(self, request):
        if not self._authorized(request):
            return self._challenge(request)
        key = (request.match_info["name"], request.match_info["reference"])
        if key not in self.manifests:
            return web.json_response({"errors": [{"code": "MANIFEST_UNKNOWN"}]}, status=404)
        media_type, body, digest = self.manifests[key]
        return web.Response(
            body=body,
            content_type=media_type,
            headers={"Docker-Content-Digest": digest},
        )

    async def get_blob(self, request):
        if not self._authorized(request):
            return self._challenge(request)
        digest = request.match_info["digest"]
        self.blob_requests.append(digest)
        if digest not in self.blobs:
            return web.json_response({"errors": [{"code": "BLOB_UNKNOWN"}]}, status=404)
        return web.Response(body=self.blobs[digest], content_type="application/octet-stream")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/v2/", self.ping)
        app.router.add_get("/token", self.issue_token)
        app.router.add_get("/v2/{name:.+}/manifests/{reference}", self.get_manifest)
        app.router.add_get("/v2/{name:.+}/blobs/{digest}", self.get_blob)
        return app
