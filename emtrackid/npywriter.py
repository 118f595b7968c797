"""Streaming writer for NumPy ``.npy`` record-array files with file rotation."""

from __future__ import annotations

import enum
import os
import struct
from typing import IO, Any

_STRING_BASE = 100
_MAX_STRING = 155
_MAGIC = b"\x93NUMPY"


class ColumnType(enum.IntEnum):
    """Fixed-size column types of a record array."""

    BOOL = 0
    INT = 1
    INTC = 2
    INTP = 3
    INT8 = 4
    INT16 = 5
    INT32 = 6
    INT64 = 7
    UINT8 = 8
    UINT16 = 9
    UINT32 = 10
    UINT64 = 11
    FLOAT = 12
    FLOAT16 = 13
    FLOAT32 = 14
    FLOAT64 = 15
    COMPLEX = 16
    COMPLEX64 = 17
    COMPLEX128 = 18


class NpyWriterError(Exception):
    """Raised when data cannot be written to the record array."""


_DESCR = {
    ColumnType.BOOL: "|b1",
    ColumnType.INT: "<i8",
    ColumnType.INTC: "<i4",
    ColumnType.INTP: "<i8",
    ColumnType.INT8: "|i1",
    ColumnType.INT16: "<i2",
    ColumnType.INT32: "<i4",
    ColumnType.INT64: "<i8",
    ColumnType.UINT8: "|u1",
    ColumnType.UINT16: "<u2",
    ColumnType.UINT32: "<u4",
    ColumnType.UINT64: "<u8",
    ColumnType.FLOAT: "<f8",
    ColumnType.FLOAT16: "<f2",
    ColumnType.FLOAT32: "<f4",
    ColumnType.FLOAT64: "<f8",
    ColumnType.COMPLEX: "<c16",
    ColumnType.COMPLEX64: "<c8",
    ColumnType.COMPLEX128: "<c16",
}

_PACK = {
    ColumnType.BOOL: struct.Struct("<b"),
    ColumnType.INT: struct.Struct("<q"),
    ColumnType.INTC: struct.Struct("<i"),
    ColumnType.INTP: struct.Struct("<Q"),
    ColumnType.INT8: struct.Struct("<b"),
    ColumnType.INT16: struct.Struct("<h"),
    ColumnType.INT32: struct.Struct("<i"),
    ColumnType.INT64: struct.Struct("<q"),
    ColumnType.UINT8: struct.Struct("<B"),
    ColumnType.UINT16: struct.Struct("<H"),
    ColumnType.UINT32: struct.Struct("<I"),
    ColumnType.UINT64: struct.Struct("<Q"),
    ColumnType.FLOAT: struct.Struct("<d"),
    ColumnType.FLOAT16: struct.Struct("<e"),
    ColumnType.FLOAT32: struct.Struct("<f"),
    ColumnType.FLOAT64: struct.Struct("<d"),
}

_COMPLEX_PACK = {
    ColumnType.COMPLEX: struct.Struct("<dd"),
    ColumnType.COMPLEX64: struct.Struct("<ff"),
    ColumnType.COMPLEX128: struct.Struct("<dd"),
}


def _string_length(column_type: int) -> int | None:
    length = int(column_type) - _STRING_BASE
    if 0 < length < _MAX_STRING:
        return length
    return None


def string_column(size: int) -> int:
    """Return the column type code of a fixed-size byte string column."""
    if not 0 < size < _MAX_STRING:
        raise ValueError(f"string column size must be in 1..{_MAX_STRING - 1}, got {size}")
    return _STRING_BASE + size


def descr(column_type: int) -> str:
    """Return the NumPy type descriptor of a column type."""
    try:
        return _DESCR[ColumnType(column_type)]
    except ValueError:
        pass
    length = _string_length(column_type)
    if length is None:
        raise ValueError(f"unknown column type {column_type!r}")
    return f"|S{length}"


class NpyWriter:
    """Writes rows of a record array into ``<prefix><n>.npy`` files.

    Each file holds at most ``rows_per_file`` rows; a new file is started
    when that many rows have been written. A partly filled file has its
    declared shape corrected when the writer is closed.
    """

    def __init__(self, prefix: str | os.PathLike[str], rows_per_file: int) -> None:
        if rows_per_file < 1:
            raise ValueError("rows_per_file must be positive")
        self._prefix = os.fspath(prefix)
        self._rows_per_file = rows_per_file
        self._names: list[str] = []
        self._types: list[int] = []
        self._file: IO[bytes] | None = None
        self._seek_position = 0
        self._seek_size = 0
        self._column = 0
        self._row_in_file = 0
        self._file_number = 0
        self._started = False

    def add_column(self, name: str, column_type: int) -> None:
        """Append a column; must be called before any value is written."""
        if self._started:
            raise NpyWriterError("cannot add columns after writing has started")
        descr(column_type)
        self._names.append(name)
        self._types.append(column_type)

    def _open(self) -> None:
        columns = ", ".join(
            f"('{name}', '{descr(kind)}')" for name, kind in zip(self._names, self._types)
        )
        head = ("{'descr': [" + columns + "], 'fortran_order': False, 'shape': (").encode()
        count = str(self._rows_per_file).encode()
        header = head + count + b",), }"
        self._seek_position = len(head)
        self._seek_size = len(count)

        size = len(header)
        version = 2 if size > 65535 else 1
        while (6 + 2 + (2 if version == 1 else 4) + size) % 16 != 0:
            size += 1
            if size > 65535:
                version = 2
        header = header.ljust(size, b" ")

        if version == 1:
            preamble = _MAGIC + b"\x01\x00" + struct.pack("<H", size)
        else:
            preamble = _MAGIC + b"\x02\x00" + struct.pack("<I", size)
        self._seek_position += len(preamble)

        path = f"{self._prefix}{self._file_number}.npy"
        self._file = open(path, "wb")
        self._file.write(preamble + header)

    def _encode(self, column_type: int, value: Any) -> bytes:
        length = _string_length(column_type)
        if length is not None:
            if isinstance(value, str):
                value = value.encode()
            if not isinstance(value, (bytes, bytearray)):
                raise NpyWriterError("string column needs str or bytes")
            return bytes(value[:length]).ljust(length, b"\x00")
        kind = ColumnType(column_type)
        try:
            if kind in _COMPLEX_PACK:
                number = complex(value)
                return _COMPLEX_PACK[kind].pack(number.real, number.imag)
            if kind is ColumnType.BOOL:
                value = int(value)
            return _PACK[kind].pack(value)
        except (struct.error, TypeError) as err:
            raise NpyWriterError(
                f"cannot write {value!r} to column of type {descr(kind)}: {err}"
            ) from err

    def write(self, value: Any) -> None:
        """Write one value into the current column of the current row."""
        if not self._types:
            raise NpyWriterError("no columns defined")
        data = self._encode(self._types[self._column], value)
        if self._file is None:
            self._open()
        self._started = True
        assert self._file is not None
        self._file.write(data)
        self._column = (self._column + 1) % len(self._types)
        if self._column == 0:
            self._row_in_file += 1
            if self._row_in_file == self._rows_per_file:
                self._file.close()
                self._file = None
                self._row_in_file = 0
                self._file_number += 1

    def write_row(self, *args: Any) -> None:
        """Write a whole row, one value per column."""
        if self._column != 0:
            raise NpyWriterError("a row is already partly written")
        if len(args) != len(self._types):
            raise NpyWriterError(f"expected {len(self._types)} values, got {len(args)}")
        for value in args:
            self.write(value)

    def close(self) -> None:
        """Close the current file, fixing its row count if it is short."""
        if self._file is None:
            return
        if self._row_in_file < self._rows_per_file:
            self._file.seek(self._seek_position)
            self._file.write(b" " * self._seek_size)
            self._file.seek(self._seek_position)
            self._file.write(str(self._row_in_file).encode())
        self._file.close()
        self._file = None

    def __enter__(self) -> NpyWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()