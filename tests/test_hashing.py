"""Tests for file hashing."""

from pathlib import Path

import pytest

from harvest_core import HASH_BUFFER_SIZE, hash_file


def test_md5_of_known_content(tmp_path: Path) -> None:
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello world")
    assert hash_file(path) == "5eb63bbbe01eeed093cb22bb8f5acdc3"


def test_md5_of_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.txt"
    path.write_bytes(b"")
    assert hash_file(path) == "d41d8cd98f00b204e9800998ecf8427e"


def test_sha256_of_known_content(tmp_path: Path) -> None:
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello world")
    assert hash_file(path, "sha256") == (
        "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"
    )


def test_content_larger_than_buffer(tmp_path: Path) -> None:
    import hashlib

    data = bytes(range(256)) * (HASH_BUFFER_SIZE // 64 + 3)
    path = tmp_path / "big.bin"
    path.write_bytes(data)
    assert hash_file(path) == hashlib.md5(data).hexdigest()


def test_rehash_is_stable(tmp_path: Path) -> None:
    path = tmp_path / "doc.pdf"
    path.write_bytes(b"%PDF-1.4 sample")
    assert hash_file(path) == hash_file(path)


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        hash_file(tmp_path / "missing.pdf")
