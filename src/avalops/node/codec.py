# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/node/codec.py

"""
Filename-safe token for a node identity.

    fields -> canonical JSON -> zstd -> base58

The token is what lets a reader rebuild a peer's connection details from a
directory listing alone, so encode() must stay deterministic and decode()
must stay its exact inverse.
"""

from __future__ import annotations

import json

import base58
import zstandard

from ..errors import DecodeError, InvalidInputError
from .models import Node

# Fixed level, no checksum, content size in the frame header: output is stable.
_ZSTD_LEVEL = 3

_FIELDS = ("kind", "machine_id", "node_id", "public_ip", "http_endpoint")


def _compressor() -> zstandard.ZstdCompressor:
    return zstandard.ZstdCompressor(
        level=_ZSTD_LEVEL,
        write_checksum=False,
        write_content_size=True,
    )


def encode(node: Node) -> str:
    raw = json.dumps(node.to_dict(), sort_keys=True, separators=(",", ":"))
    compressed = _compressor().compress(raw.encode("utf-8"))
    return base58.b58encode(compressed).decode("ascii")


def decode(token: str) -> Node:
    try:
        compressed = base58.b58decode(token.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise DecodeError(f"invalid base58 token {token!r}: {e}", stage="base58") from e
    if not compressed:
        raise DecodeError("empty token", stage="base58")

    try:
        raw = zstandard.ZstdDecompressor().decompress(compressed)
    except zstandard.ZstdError as e:
        raise DecodeError(f"failed to decompress token: {e}", stage="decompress") from e

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"token payload is not a node record: {e}", stage="layout") from e

    if not isinstance(data, dict) or sorted(data) != sorted(_FIELDS):
        raise DecodeError(f"unexpected node fields {data!r}", stage="layout")

    try:
        return Node.from_dict(data)
    except InvalidInputError as e:
        raise DecodeError(str(e), stage="layout") from e
