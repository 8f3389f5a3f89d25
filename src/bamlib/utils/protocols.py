from typing import Protocol, runtime_checkable


@runtime_checkable
class ByteRangeFetcher(Protocol):
    """Protocol for services that return the raw bytes of a byte range of a local or remote file."""
    def fetch(self, location: str, offset: int = 0, length: int = None) -> bytes: ...


@runtime_checkable
class BlockDecompressor(Protocol):
    """Protocol for services that inflate a compressed byte range into the buffer the decoders expect."""
    def decompress(self, data: bytes) -> bytes: ...


@runtime_checkable
class AliasResolver(Protocol):
    """Protocol for objects mapping a native reference name to its canonical (genome) spelling."""
    def __call__(self, name: str) -> str: ...


@runtime_checkable
class AlignmentPredicate(Protocol):
    """Protocol for caller-supplied filters evaluated once per fully decoded candidate record."""
    def __call__(self, record: 'AlignmentRecord') -> bool: ...
