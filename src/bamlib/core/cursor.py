"""
Little-endian primitive reads over byte buffers. Every function takes an explicit offset; there is no cursor state.
"""
from struct import Struct
from typing import Union

Buffer = Union[bytes, bytearray, memoryview]

_INT32: Struct = Struct('<i')
_UINT32: Struct = Struct('<I')


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class BoundsError(IndexError):
    """Raised when a bounds-checked read would run past the end of the buffer."""


# Functions ------------------------------------------------------------------------------------------------------------
def read_int32(buf: Buffer, offset: int) -> int:
    """
    Reads a signed 32-bit little-endian integer.

    No bounds check is made here; callers validate the containing record's declared size first.
    """
    return _INT32.unpack_from(buf, offset)[0]


def read_uint32(buf: Buffer, offset: int) -> int:
    """
    Reads an unsigned 32-bit little-endian integer.

    Raises:
        BoundsError: If ``offset + 4`` exceeds the buffer length.
    """
    if len(buf) < offset + 4:
        raise BoundsError(f'Array index out of bounds when reading UInt32 at offset {offset}')
    return _UINT32.unpack_from(buf, offset)[0]


def read_uint8(buf: Buffer, offset: int) -> int: return buf[offset]


def read_string(buf: Buffer, offset: int, length: int) -> str:
    """Reads ``length`` bytes as a latin-1 string."""
    return bytes(buf[offset:offset + length]).decode('latin-1')


def read_cstring(buf: Buffer, offset: int, end: int = None) -> tuple[str, int]:
    """
    Reads a null-terminated string starting at ``offset``.

    Returns:
        The string (terminator excluded) and the offset just past the terminator. If no terminator is found before
        ``end`` the string runs to ``end``.
    """
    if end is None: end = len(buf)
    stop = bytes(buf[offset:end]).find(b'\x00')
    if stop == -1: return read_string(buf, offset, end - offset), end
    return read_string(buf, offset, stop), offset + stop + 1
