"""RawRecord dataclass for GDSII stream parsing."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from gdsdump.stream import decoders
from gdsdump.stream.constants import EXPECTED_DATA_TYPE, RECORD_HEADER_SIZE
from gdsdump.stream.enums import is_known_record, record_name
from gdsdump.stream.errors import MalformedField


@dataclass(slots=True)
class RawRecord:
    """A single framed record: header fields plus undecoded payload."""
    length: int        # Declared length, header included
    record_type: int   # Record type code (BGNLIB, XY, etc.)
    data_type: int     # Declared payload data type
    payload: bytes     # length - 4 bytes
    offset: int = 0    # Byte offset of the header in the source

    @property
    def name(self) -> str | None:
        return record_name(self.record_type)

    @property
    def is_known(self) -> bool:
        return is_known_record(self.record_type)

    @property
    def size(self) -> int:
        return len(self.payload)

    def decode(self):
        """Decode the payload according to the declared data type."""
        return decoders.decode_field(self.data_type, self.payload)

    def values(self, count: Optional[int] = None) -> tuple:
        """Decode the payload, checking the declared data type and arity.

        Raises MalformedField when the declared data type is not the one this
        record type carries, the payload does not fit it, or the number of
        decoded values differs from count.
        """
        expected = EXPECTED_DATA_TYPE.get(self.record_type)
        if expected is not None and self.data_type != expected:
            raise MalformedField(
                f"{self.name} declares data type {self.data_type}, expected {expected}",
                offset=self.offset,
            )
        try:
            values = self.decode()
        except MalformedField as exc:
            exc.offset = self.offset
            exc.message = f"{self.name or hex(self.record_type)}: {exc.message}"
            raise
        if not isinstance(values, tuple):
            values = (values,)
        if count is not None and len(values) != count:
            raise MalformedField(
                f"{self.name} carries {len(values)} values, expected {count}",
                offset=self.offset,
            )
        return values

    def as_points(self) -> list[tuple[int, int]]:
        """Decode an XY payload into (x, y) pairs."""
        values = self.values()
        if len(values) % 2:
            raise MalformedField(
                f"XY payload holds {len(values)} coordinates, not a whole number of pairs",
                offset=self.offset,
            )
        return list(zip(values[0::2], values[1::2]))


def make_record(record_type: int, data_type: int, payload: bytes = b"",
                offset: int = 0) -> RawRecord:
    """Build a RawRecord with a consistent declared length."""
    return RawRecord(
        length=RECORD_HEADER_SIZE + len(payload),
        record_type=record_type,
        data_type=data_type,
        payload=payload,
        offset=offset,
    )
