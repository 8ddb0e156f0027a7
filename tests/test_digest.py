"""Tests for digest utilities."""

import hashlib

import pytest

from oci_fetch.utils.digest import blob_path, calculate_digest, validate_digest

SHA256_HEX = hashlib.sha256(b"hello").hexdigest()


def test_calculate_digest():
    assert calculate_digest(b"hello") == f"sha256:{SHA256_HEX}"
    assert calculate_digest(bytearray(b"hello"), "sha512") == (
        f"sha512:{hashlib.sha512(b'hello').hexdigest()}"
    )


def test_calculate_digest_rejects_bad_input():
    with pytest.raises(ValueError, match="bytes"):
        calculate_digest("hello")
    with pytest.raises(ValueError, match="Unsupported"):
        calculate_digest(b"hello", "md5")


@pytest.mark.parametrize(
    "digest,valid",
    [
        (f"sha256:{SHA256_HEX}", True),
        (f"sha512:{'a' * 128}", True),
        (f"sha256:{SHA256_HEX[:-1]}", False),
        (f"sha256:{SHA256_HEX.upper()}", False),
        (f"md5:{'a' * 32}", False),
        ("sha256:../../etc/passwd", False),
        ("sha256", False),
        ("", False),
        (None, False),
    ],
)
def test_validate_digest(digest, valid):
    assert validate_digest(digest) is valid


def test_blob_path():
    assert blob_path(f"sha256:{SHA256_HEX}") == f"blobs/sha256/{SHA256_HEX}"


def test_blob_path_rejects_invalid_digest():
    with pytest.raises(ValueError, match="Invalid digest format"):
        blob_path("sha256:../../etc/passwd")
