"""Canonical byte encoding shared by the audit chain and the state digest."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .errors import ErrorCode, EscrowError


@dataclass
class Writer:
    buf: bytearray = field(default_factory=bytearray)

    def write_u8(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(1, "big", signed=False))

    def write_u64(self, v: int) -> None:
        if v < 0:
            raise EscrowError(ErrorCode.INVALID_PARAMS, "u64 must be non-negative")
        self.buf.extend(int(v).to_bytes(8, "big", signed=False))

    def write_u128(self, v: int) -> None:
        if v < 0:
            raise EscrowError(ErrorCode.INVALID_PARAMS, "u128 must be non-negative")
        self.buf.extend(int(v).to_bytes(16, "big", signed=False))

    def write_bytes(self, b: bytes) -> None:
        self.buf.extend(b)

    def write_bool(self, v: bool) -> None:
        self.write_u8(1 if v else 0)

    def write_str(self, s: str) -> None:
        data = s.encode("utf-8")
        self.write_u64(len(data))
        self.buf.extend(data)

    def write_opt_u64(self, v: Optional[int]) -> None:
        self.write_bool(v is not None)
        if v is not None:
            self.write_u64(v)

    def write_opt_str(self, s: Optional[str]) -> None:
        self.write_bool(s is not None)
        if s is not None:
            self.write_str(s)

    def getvalue(self) -> bytes:
        return bytes(self.buf)
