"""
Local implementations of the byte-range fetch and block decompression collaborators.
"""
from io import IOBase
from pathlib import Path
from typing import Union, BinaryIO
import zlib


# Classes --------------------------------------------------------------------------------------------------------------
class LocalFetcher:
    """
    Reads byte ranges from local files or open binary handles.

    Examples:
        >>> LocalFetcher().fetch("reads.bam", 0, 65536)[:4]
        b'\\x1f\\x8b\\x08\\x04'
    """
    __slots__ = ()

    def fetch(self, location: Union[str, Path, BinaryIO], offset: int = 0, length: int = None) -> bytes:
        """
        Returns ``length`` bytes starting at ``offset`` (to EOF if ``length`` is None).

        Args:
            location: File path or an existing seekable binary handle.
            offset: Byte offset to start at.
            length: Number of bytes to read.
        """
        if isinstance(location, IOBase):
            location.seek(offset)
            return location.read(-1 if length is None else length)
        with open(Path(location).expanduser(), mode='rb') as handle:
            handle.seek(offset)
            return handle.read(-1 if length is None else length)


class GzipDecompressor:
    """
    Inflates BGZF (concatenated gzip members) data into a raw byte buffer.

    Members are inflated one at a time so that a byte range ending mid-member still yields everything before the cut;
    the record decoders treat the resulting partial trailing record as end-of-stream. Data without the gzip magic is
    returned unchanged.
    """
    __slots__ = ()
    _MAGIC = b'\x1f\x8b'

    def decompress(self, data: bytes) -> bytes:
        if not data[:2] == self._MAGIC: return bytes(data)
        out = bytearray()
        view = memoryview(data)
        while len(view) >= 2 and view[:2] == self._MAGIC:
            member = zlib.decompressobj(zlib.MAX_WBITS | 16)
            try: out += member.decompress(view)
            except zlib.error: break  # Corrupt or cut inside the member header
            if not member.eof: break  # Truncated trailing member
            view = view[len(view) - len(member.unused_data):]
        return bytes(out)
