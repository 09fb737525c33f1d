"""Little-endian binary encoding in the borsh layout."""

from __future__ import annotations

import struct


class DecodeError(ValueError):
    """Raised when bytes do not decode to the expected value."""


_U8 = struct.Struct("<B")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")


class BorshReader:
    """Reads values one after another from a byte string."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)
        self._pos = 0

    def read_bytes(self, size: int) -> bytes:
        if size < 0:
            raise ValueError("size must not be negative")
        if self.remaining() < size:
            raise DecodeError(f"need {size} bytes, {self.remaining()} left")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def _unpack(self, fmt: struct.Struct) -> int:
        return fmt.unpack(self.read_bytes(fmt.size))[0]

    def read_u8(self) -> int:
        return self._unpack(_U8)

    def read_u32(self) -> int:
        return self._unpack(_U32)

    def read_u64(self) -> int:
        return self._unpack(_U64)

    def read_i64(self) -> int:
        return self._unpack(_I64)

    def read_bool(self) -> bool:
        value = self.read_u8()
        if value > 1:
            raise DecodeError(f"invalid bool value: {value}")
        return value == 1

    def read_string(self) -> str:
        raw = self.read_bytes(self.read_u32())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("string is not valid UTF-8") from exc

    def remaining(self) -> int:
        return len(self._data) - self._pos


class BorshWriter:
    """Accumulates encoded values."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def _pack(self, fmt: struct.Struct, value: int) -> None:
        try:
            self._buffer += fmt.pack(value)
        except struct.error as exc:
            raise ValueError(f"value out of range: {value!r}") from exc

    def write_u8(self, value: int) -> None:
        self._pack(_U8, value)

    def write_u32(self, value: int) -> None:
        self._pack(_U32, value)

    def write_u64(self, value: int) -> None:
        self._pack(_U64, value)

    def write_i64(self, value: int) -> None:
        self._pack(_I64, value)

    def write_bool(self, value: bool) -> None:
        self.write_u8(1 if value else 0)

    def write_string(self, value: str) -> None:
        raw = value.encode("utf-8")
        self.write_u32(len(raw))
        self._buffer += raw

    def write_bytes(self, value: bytes) -> None:
        self._buffer += value

    def getvalue(self) -> bytes:
        return bytes(self._buffer)