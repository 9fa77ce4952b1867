"""Key layout of the legacy LevelDB shards.

Metadata keys live above every field id so that a point scan never runs into
them::

    NEXT_ID_KEY                                    -> next field id
    DATABASE_SERIES_INDEX_PREFIX + "db~series"     -> b""
    SERIES_COLUMN_INDEX_PREFIX + "db~series~col"   -> field id
    field id | timestamp | sequence number         -> JSON encoded value

All integers are 8 byte big-endian. Timestamps are signed microseconds shifted
by 2**63 so byte order matches numeric order.
"""

import json
import struct

from ..models.series import FieldValue

NEXT_ID_KEY = b"\xff" * 8
DATABASE_SERIES_INDEX_PREFIX = b"\xff" * 7 + b"\xfe"
SERIES_COLUMN_INDEX_PREFIX = b"\xff" * 7 + b"\xfd"

SEPARATOR = "~"
ID_WIDTH = 8
POINT_KEY_WIDTH = ID_WIDTH * 3

_UINT64 = struct.Struct(">Q")
_TIMESTAMP_OFFSET = 1 << 63


def encode_id(value: int) -> bytes:
    return _UINT64.pack(value)


def decode_id(raw: bytes) -> int:
    return _UINT64.unpack(raw[:ID_WIDTH])[0]


def database_series_key(database: str, series: str = "") -> bytes:
    """Index key of a series; with an empty series this is the database's scan prefix."""
    return DATABASE_SERIES_INDEX_PREFIX + f"{database}{SEPARATOR}{series}".encode()


def series_column_key(database: str, series: str, column: str = "") -> bytes:
    """Index key of a column; with an empty column this is the series' scan prefix."""
    return SERIES_COLUMN_INDEX_PREFIX + SEPARATOR.join((database, series, column)).encode()


def point_key(field_id: int, timestamp: int, sequence_number: int) -> bytes:
    return (
        _UINT64.pack(field_id)
        + _UINT64.pack(timestamp + _TIMESTAMP_OFFSET)
        + _UINT64.pack(sequence_number)
    )


def decode_point_key(key: bytes) -> tuple[int, int, int]:
    """Return (field id, timestamp, sequence number)."""
    if len(key) != POINT_KEY_WIDTH:
        raise ValueError(f"Malformed point key of length {len(key)}")
    field_id, shifted, sequence_number = struct.unpack(">QQQ", key)
    return field_id, shifted - _TIMESTAMP_OFFSET, sequence_number


def encode_value(value: FieldValue) -> bytes:
    return json.dumps(value).encode()


def decode_value(raw: bytes) -> FieldValue:
    return json.loads(raw)
