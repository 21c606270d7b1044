"""Decoding of compressed (``.z``) topic payloads.

Compressed topics carry their value as base64 text wrapping a raw deflate
stream (no zlib or gzip header) of UTF-8 JSON.
"""

from __future__ import annotations

import base64
import binascii
import json
import zlib
from typing import Any

from pylivetiming.exceptions import DecodeError


def inflate_raw(data: bytes) -> bytes:
    """Inflate a headerless deflate stream.

    Raises
    ------
    DecodeError
        If the stream is corrupt, truncated, or followed by trailing data.
    """
    decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
    try:
        inflated = decompressor.decompress(data) + decompressor.flush()
    except zlib.error as exc:
        raise DecodeError(f"Raw inflate failed: {exc}") from exc
    if not decompressor.eof:
        raise DecodeError("Raw inflate failed: truncated deflate stream")
    if decompressor.unused_data:
        raise DecodeError(f"Raw inflate failed: {len(decompressor.unused_data)} trailing bytes")
    return inflated


def decode_topic_payload(payload: str) -> Any:
    """Decode a compressed topic payload into its JSON value.

    Parameters
    ----------
    payload : str
        Base64 text of a raw-deflate compressed JSON document.

    Returns
    -------
    Any
        The parsed JSON value (object, array, string, number, bool or None).

    Raises
    ------
    DecodeError
        If base64 decoding, inflating, UTF-8 decoding or JSON parsing fails.
    """
    if not isinstance(payload, str):
        raise DecodeError(f"Compressed payload must be base64 text, got {type(payload).__name__}")

    try:
        compressed = base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Base64 decoding failed: {exc}") from exc

    inflated = inflate_raw(compressed)

    try:
        text = inflated.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Decompressed payload is not UTF-8: {exc}") from exc

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Decompressed payload is not JSON: {text[:64]!r}") from exc
