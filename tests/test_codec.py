from __future__ import annotations

import base64
import json
import zlib

import pytest

from pylivetiming._codec import decode_topic_payload, inflate_raw
from pylivetiming.exceptions import DecodeError


def _deflate(data: bytes) -> bytes:
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    return compressor.compress(data) + compressor.flush()


def _encode(value: object) -> str:
    return base64.b64encode(_deflate(json.dumps(value).encode("utf-8"))).decode("ascii")


def test_decode_car_data_payload() -> None:
    value = {"Entries": [{"Utc": "2024-03-02T15:00:00Z", "Cars": {"1": {"Channels": {"0": 11000, "2": 301}}}}]}

    assert decode_topic_payload(_encode(value)) == value


def test_decode_accepts_any_json_kind() -> None:
    assert decode_topic_payload(_encode([1, 2, 3])) == [1, 2, 3]
    assert decode_topic_payload(_encode("text")) == "text"
    assert decode_topic_payload(_encode(None)) is None


def test_decode_strips_utf8_bom() -> None:
    payload = base64.b64encode(_deflate(b'\xef\xbb\xbf{"a": 1}')).decode("ascii")

    assert decode_topic_payload(payload) == {"a": 1}


def test_decode_rejects_invalid_base64() -> None:
    with pytest.raises(DecodeError, match="Base64"):
        decode_topic_payload("not*base64!")


def test_decode_rejects_zlib_wrapped_stream() -> None:
    payload = base64.b64encode(zlib.compress(b'{"a": 1}')).decode("ascii")

    with pytest.raises(DecodeError, match="inflate"):
        decode_topic_payload(payload)


def test_decode_rejects_non_json_content() -> None:
    payload = base64.b64encode(_deflate(b"{not json")).decode("ascii")

    with pytest.raises(DecodeError, match="not JSON") as exc_info:
        decode_topic_payload(payload)
    assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)


def test_decode_rejects_invalid_utf8() -> None:
    payload = base64.b64encode(_deflate(b"\xff\xfe\xfa")).decode("ascii")

    with pytest.raises(DecodeError, match="UTF-8"):
        decode_topic_payload(payload)


def test_decode_rejects_non_string_payload() -> None:
    with pytest.raises(DecodeError):
        decode_topic_payload({"already": "decoded"})  # type: ignore[arg-type]


def test_inflate_raw_rejects_truncated_stream() -> None:
    compressed = _deflate(b'{"key": "' + b"x" * 200 + b'"}')

    with pytest.raises(DecodeError, match="truncated"):
        inflate_raw(compressed[: len(compressed) // 2])


def test_inflate_raw_rejects_trailing_data() -> None:
    with pytest.raises(DecodeError, match="trailing"):
        inflate_raw(_deflate(b"{}") + b"garbage")
