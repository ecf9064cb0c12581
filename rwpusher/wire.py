"""Prometheus remote-write wire format: protobuf encoding plus snappy.

Encodes the remote-write 1.0 messages by hand:

    message WriteRequest { repeated TimeSeries timeseries = 1; }
    message TimeSeries   { repeated Label labels = 1; repeated Sample samples = 2; }
    message Label        { string name = 1; string value = 2; }
    message Sample       { double value = 1; int64 timestamp = 2; }
"""
import struct
from typing import Iterable, List, Tuple

import snappy

from rwpusher.errors import CompressError, EncodeError
from rwpusher.series import TimeSeries

# Protobuf wire types
WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

UINT64_MASK = (1 << 64) - 1
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1


def _encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as a protobuf varint."""
    result = bytearray()
    while value > 0x7F:
        result.append((value & 0x7F) | 0x80)
        value >>= 7
    result.append(value)
    return bytes(result)


def _encode_key(field_number: int, wire_type: int) -> bytes:
    return _encode_varint((field_number << 3) | wire_type)


def _encode_bytes(field_number: int, data: bytes) -> bytes:
    """Encode a length-delimited field (strings and nested messages)."""
    return _encode_key(field_number, WIRE_LENGTH_DELIMITED) + _encode_varint(len(data)) + data


def _encode_string(field_number: int, value: str) -> bytes:
    return _encode_bytes(field_number, value.encode("utf-8"))


def _encode_double(field_number: int, value: float) -> bytes:
    return _encode_key(field_number, WIRE_FIXED64) + struct.pack("<d", value)


def _encode_int64(field_number: int, value: int) -> bytes:
    """Encode an int64 field; negatives use the two's-complement form."""
    if not INT64_MIN <= value <= INT64_MAX:
        raise OverflowError(f"{value} does not fit in int64")
    return _encode_key(field_number, WIRE_VARINT) + _encode_varint(value & UINT64_MASK)


def _encode_label(name: str, value: str) -> bytes:
    return _encode_string(1, name) + _encode_string(2, value)


def _encode_sample(value: float, timestamp_ms: int) -> bytes:
    return _encode_double(1, value) + _encode_int64(2, timestamp_ms)


def _encode_timeseries(series: TimeSeries) -> bytes:
    parts = []
    for name, value in series.wire_labels():
        parts.append(_encode_bytes(1, _encode_label(name, value)))
    for value, timestamp_ms in series.samples:
        parts.append(_encode_bytes(2, _encode_sample(value, timestamp_ms)))
    return b"".join(parts)


def encode_write_request(series: Iterable[TimeSeries]) -> bytes:
    """Serialize time series into a WriteRequest message."""
    try:
        return b"".join(_encode_bytes(1, _encode_timeseries(ts)) for ts in series)
    except (AttributeError, TypeError, ValueError, OverflowError, struct.error) as e:
        raise EncodeError(f"failed to serialize write request: {e}") from e


def compress(data: bytes) -> bytes:
    """Snappy block-compress a serialized write request."""
    try:
        return snappy.compress(data)
    except Exception as e:
        raise CompressError(f"failed to compress write request: {e}") from e


def build_write_request(series: Iterable[TimeSeries]) -> bytes:
    """Serialize and compress time series into a remote-write payload."""
    return compress(encode_write_request(series))


def decompress(payload: bytes) -> bytes:
    """Inverse of compress(); raises ValueError on corrupt input."""
    try:
        return snappy.decompress(payload)
    except Exception as e:
        raise ValueError(f"invalid snappy payload: {e}") from e


def _decode_varint(data: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 64:
            raise ValueError("varint too long")


def _iter_fields(data: bytes):
    """Yield (field_number, wire_type, value) for each field of a message."""
    pos = 0
    while pos < len(data):
        key, pos = _decode_varint(data, pos)
        field_number, wire_type = key >> 3, key & 0x07
        if wire_type == WIRE_VARINT:
            value, pos = _decode_varint(data, pos)
        elif wire_type == WIRE_FIXED64:
            if pos + 8 > len(data):
                raise ValueError("truncated fixed64 field")
            value, pos = data[pos:pos + 8], pos + 8
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, pos = _decode_varint(data, pos)
            if pos + length > len(data):
                raise ValueError("truncated length-delimited field")
            value, pos = data[pos:pos + length], pos + length
        elif wire_type == WIRE_FIXED32:
            if pos + 4 > len(data):
                raise ValueError("truncated fixed32 field")
            value, pos = data[pos:pos + 4], pos + 4
        else:
            raise ValueError(f"unsupported wire type {wire_type}")
        yield field_number, wire_type, value


def _decode_label(data: bytes) -> Tuple[str, str]:
    name, value = "", ""
    for field_number, wire_type, raw in _iter_fields(data):
        if wire_type != WIRE_LENGTH_DELIMITED:
            continue
        if field_number == 1:
            name = raw.decode("utf-8")
        elif field_number == 2:
            value = raw.decode("utf-8")
    return name, value


def _decode_sample(data: bytes) -> Tuple[float, int]:
    value, timestamp_ms = 0.0, 0
    for field_number, wire_type, raw in _iter_fields(data):
        if field_number == 1 and wire_type == WIRE_FIXED64:
            value = struct.unpack("<d", raw)[0]
        elif field_number == 2 and wire_type == WIRE_VARINT:
            timestamp_ms = raw - (1 << 64) if raw > INT64_MAX else raw
    return value, timestamp_ms


def _decode_timeseries(data: bytes) -> TimeSeries:
    name = ""
    labels: List[Tuple[str, str]] = []
    samples: List[Tuple[float, int]] = []
    for field_number, wire_type, raw in _iter_fields(data):
        if wire_type != WIRE_LENGTH_DELIMITED:
            continue
        if field_number == 1:
            label = _decode_label(raw)
            if label[0] == "__name__":
                name = label[1]
            else:
                labels.append(label)
        elif field_number == 2:
            samples.append(_decode_sample(raw))
    return TimeSeries(name=name, labels=tuple(labels), samples=tuple(samples))


def decode_write_request(data: bytes) -> List[TimeSeries]:
    """Parse an uncompressed WriteRequest message back into time series."""
    return [
        _decode_timeseries(raw)
        for field_number, wire_type, raw in _iter_fields(data)
        if field_number == 1 and wire_type == WIRE_LENGTH_DELIMITED
    ]
