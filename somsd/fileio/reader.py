"""Byte-level access to (possibly compressed) data and map files."""

import bz2
import gzip
import sys
from pathlib import Path

import numpy as np

from somsd.errors import DataFormatError

LITTLE_ENDIAN = 1234
BIG_ENDIAN = 4321

GZIP_MAGIC = b"\x1f\x8b"
BZIP2_MAGIC = b"BZh"


def native_byteorder() -> int:
    return LITTLE_ENDIAN if sys.byteorder == "little" else BIG_ENDIAN


def dtype_prefix(byteorder: int) -> str:
    if byteorder == LITTLE_ENDIAN:
        return "<"
    if byteorder == BIG_ENDIAN:
        return ">"
    raise DataFormatError(f"Invalid byteorder {byteorder} specified in file!")


def read_file_bytes(path) -> bytes:
    """Whole file content, transparently decompressing gzip and bzip2."""
    path = Path(path)
    if not path.exists():
        raise DataFormatError(f"Unable to open file '{path}' for reading.")
    raw = path.read_bytes()
    if raw.startswith(GZIP_MAGIC):
        return gzip.decompress(raw)
    if raw.startswith(BZIP2_MAGIC):
        return bz2.decompress(raw)
    return raw


def open_for_writing(path):
    path = Path(path)
    if path.suffix == ".gz":
        return gzip.open(path, "wb")
    if path.suffix == ".bz2":
        return bz2.open(path, "wb")
    return open(path, "wb")


class ByteReader:
    """Sequential reader over text lines mixed with binary blocks."""

    def __init__(self, data: bytes, name: str = "<data>"):
        self.data = data
        self.pos = 0
        self.lineno = 0
        self.name = name
        self.byteorder = 0

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def readline(self) -> str | None:
        if self.at_end:
            return None
        end = self.data.find(b"\n", self.pos)
        if end < 0:
            end = len(self.data)
        line = self.data[self.pos : end]
        self.pos = end + 1
        self.lineno += 1
        return line.decode("utf-8", errors="replace").rstrip("\r")

    def peek_line(self) -> str | None:
        pos, lineno = self.pos, self.lineno
        line = self.readline()
        self.pos, self.lineno = pos, lineno
        return line

    def read(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise self.error("Unexpected end of file.")
        chunk = self.data[self.pos : self.pos + n]
        self.pos += n
        return chunk

    def read_array(self, dtype: str, count: int) -> np.ndarray:
        dt = np.dtype(dtype_prefix(self.byteorder) + dtype)
        return np.frombuffer(self.read(dt.itemsize * count), dtype=dt, count=count)

    def read_uint(self) -> int:
        return int(self.read_array("u4", 1)[0])

    def read_label(self) -> str | None:
        n = self.read_uint()
        if n == 0:
            return None
        return self.read(n).decode("utf-8", errors="replace")

    def error(self, msg: str) -> DataFormatError:
        return DataFormatError(f"{msg} ({self.name}, line {self.lineno})")


def format_value(v: float) -> str:
    if np.isfinite(v) and v == int(v):
        return str(int(v))
    return f"{v:.9g}"


def get_file_option(line: str, key: str) -> str | None:
    """Value of ``key=value`` (or ``key:value``) when ``line`` sets ``key``."""
    text = line.lstrip()
    if text[: len(key)].lower() != key.lower():
        return None
    rest = text[len(key) :]
    if rest[:1].isalnum():
        return None
    for i, ch in enumerate(rest):
        if ch in "=:":
            value = rest[i:].lstrip("=:").strip()
            return value or None
    return None
