"""Error taxonomy for stream parsing.

Framing errors (TruncatedHeader, TruncatedPayload, InvalidLength) and
IOFailure abort the parse of the current source. MalformedField and
StructuralMismatch are collected as Diagnostic values on the nearest
enclosing Library / Structure / Element instead of being raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class GDSError(Exception):
    """Base class for all stream decoding errors."""

    kind = "GDSError"

    def __init__(self, message: str, *, offset: Optional[int] = None,
                 context: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.offset = offset
        self.context = context

    def __str__(self) -> str:
        parts = [self.kind]
        if self.offset is not None:
            parts.append(f"at offset {self.offset} (0x{self.offset:X})")
        if self.context:
            parts.append(f"in {self.context}")
        return f"{' '.join(parts)}: {self.message}"

    def to_diagnostic(self, record_type: Optional[int] = None) -> Diagnostic:
        return Diagnostic(
            kind=self.kind,
            message=self.message,
            offset=self.offset,
            record_type=record_type,
        )


class IOFailure(GDSError):
    kind = "IOFailure"


class FramingError(GDSError):
    """The byte stream cannot be split into records."""
    kind = "FramingError"


class TruncatedHeader(FramingError):
    kind = "TruncatedHeader"


class TruncatedPayload(FramingError):
    kind = "TruncatedPayload"


class InvalidLength(FramingError):
    kind = "InvalidLength"


class MalformedField(GDSError):
    kind = "MalformedField"


class StructuralMismatch(GDSError):
    kind = "StructuralMismatch"


class UnknownRecordType(GDSError):
    kind = "UnknownRecordType"


@dataclass(slots=True)
class Diagnostic:
    """A recoverable problem attached to the entity it occurred in."""
    kind: str
    message: str
    offset: Optional[int] = None
    record_type: Optional[int] = None

    def __str__(self) -> str:
        where = f" at offset {self.offset}" if self.offset is not None else ""
        return f"{self.kind}{where}: {self.message}"
