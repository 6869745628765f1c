"""Low-level GDSII record framer (big-endian, length-prefixed records)."""
from __future__ import annotations

import io
import struct
from pathlib import Path
from typing import BinaryIO, Optional, Union

from gdsdump.log import get_logger
from gdsdump.stream.constants import ENDLIB, RECORD_HEADER_SIZE
from gdsdump.stream.enums import record_name
from gdsdump.stream.errors import (
    InvalidLength,
    IOFailure,
    TruncatedHeader,
    TruncatedPayload,
)
from gdsdump.stream.records import RawRecord

log = get_logger(__name__)

# length(2) + record type(1) + data type(1)
_HEADER_FMT = struct.Struct(">HBB")

Source = Union[str, Path, bytes, bytearray, memoryview, BinaryIO]


def parse_header(header: bytes, offset: int) -> tuple[int, int, int]:
    """Unpack and validate a 4-byte record header.

    Returns (length, record_type, data_type).
    """
    if len(header) < RECORD_HEADER_SIZE:
        raise TruncatedHeader(
            f"expected {RECORD_HEADER_SIZE} header bytes, got {len(header)}",
            offset=offset,
        )
    length, record_type, data_type = _HEADER_FMT.unpack(header)
    if length < RECORD_HEADER_SIZE or length % 2:
        raise InvalidLength(
            f"declared length {length} must be even and >= {RECORD_HEADER_SIZE}"
            f" (record type 0x{record_type:02X})",
            offset=offset,
        )
    return length, record_type, data_type


def build_record(length: int, record_type: int, data_type: int,
                 payload: bytes, offset: int) -> RawRecord:
    """Check the payload against the declared length and wrap it."""
    expected = length - RECORD_HEADER_SIZE
    if len(payload) < expected:
        name = record_name(record_type) or f"0x{record_type:02X}"
        raise TruncatedPayload(
            f"{name} declares {expected} payload bytes, only {len(payload)} available",
            offset=offset,
        )
    return RawRecord(
        length=length,
        record_type=record_type,
        data_type=data_type,
        payload=bytes(payload),
        offset=offset,
    )


class RecordReader:
    """Forward-only iterator of RawRecords over a byte source.

    The source may be a path (opened and closed by the reader), a bytes-like
    buffer, or any binary file object with read(n) (owned by the caller).
    Iteration stops at end of input, or right after ENDLIB when
    stop_at_endlib is set so trailing block padding is never framed.
    """

    def __init__(self, source: Source, *, stop_at_endlib: bool = True):
        self.stop_at_endlib = stop_at_endlib
        self.offset = 0
        self.count = 0
        self._done = False
        self._owns_stream = False
        if isinstance(source, (str, Path)):
            self.path: Optional[Path] = Path(source)
            try:
                self._stream: BinaryIO = open(self.path, "rb")
            except OSError as exc:
                raise IOFailure(f"cannot open {self.path}: {exc.strerror or exc}") from exc
            self._owns_stream = True
        elif isinstance(source, (bytes, bytearray, memoryview)):
            self.path = None
            self._stream = io.BytesIO(bytes(source))
        else:
            self.path = None
            self._stream = source

    def __enter__(self) -> RecordReader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __iter__(self) -> RecordReader:
        return self

    def __next__(self) -> RawRecord:
        record = self.read_record()
        if record is None:
            raise StopIteration
        return record

    def close(self) -> None:
        self._done = True
        if self._owns_stream:
            self._stream.close()
            self._owns_stream = False

    def read_all(self) -> list[RawRecord]:
        """Read every remaining record into a list."""
        return list(self)

    def read_record(self) -> Optional[RawRecord]:
        """Read the next record, or None at end of stream."""
        if self._done:
            return None

        offset = self.offset
        try:
            header = self._read_exact(RECORD_HEADER_SIZE)
            if not header:
                self._finish()
                return None
            length, record_type, data_type = parse_header(header, offset)
            payload = self._read_exact(length - RECORD_HEADER_SIZE)
            record = build_record(length, record_type, data_type, payload, offset)
        except Exception:
            self._done = True
            raise

        self.offset += length
        self.count += 1
        if self.stop_at_endlib and record_type == ENDLIB:
            self._finish()
        return record

    def _finish(self) -> None:
        self._done = True
        log.debug("stream.end", records=self.count, offset=self.offset)

    def _read_exact(self, size: int) -> bytes:
        """Read up to size bytes, looping over short reads until EOF."""
        chunks = []
        remaining = size
        while remaining > 0:
            try:
                chunk = self._stream.read(remaining)
            except OSError as exc:
                raise IOFailure(f"read failed: {exc}", offset=self.offset) from exc
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)


class AsyncRecordReader:
    """Async counterpart of RecordReader for sources with an awaitable read(n).

    Works with asyncio.StreamReader or any object exposing
    ``async def read(n) -> bytes``; framing rules are the same.
    """

    def __init__(self, stream, *, stop_at_endlib: bool = True):
        self._stream = stream
        self.stop_at_endlib = stop_at_endlib
        self.offset = 0
        self.count = 0
        self._done = False

    def __aiter__(self) -> AsyncRecordReader:
        return self

    async def __anext__(self) -> RawRecord:
        record = await self.read_record()
        if record is None:
            raise StopAsyncIteration
        return record

    async def read_all(self) -> list[RawRecord]:
        return [record async for record in self]

    async def read_record(self) -> Optional[RawRecord]:
        if self._done:
            return None

        offset = self.offset
        try:
            header = await self._read_exact(RECORD_HEADER_SIZE)
            if not header:
                self._done = True
                return None
            length, record_type, data_type = parse_header(header, offset)
            payload = await self._read_exact(length - RECORD_HEADER_SIZE)
            record = build_record(length, record_type, data_type, payload, offset)
        except Exception:
            self._done = True
            raise

        self.offset += length
        self.count += 1
        if self.stop_at_endlib and record_type == ENDLIB:
            self._done = True
        return record

    async def _read_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining > 0:
            try:
                chunk = await self._stream.read(remaining)
            except OSError as exc:
                raise IOFailure(f"read failed: {exc}", offset=self.offset) from exc
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)
