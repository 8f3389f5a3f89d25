"""
Decoder for SAM text records.
"""
from typing import BinaryIO, Generator, Iterable, MutableSequence, Optional, Union

import numpy as np

from bamlib.align.blocks import build_blocks
from bamlib.align.cigar import CigarParser
from bamlib.containers.alignment import AlignmentRecord, Mate, SamFlag
from bamlib.utils.protocols import AlignmentPredicate


# Constants ------------------------------------------------------------------------------------------------------------
PHRED_OFFSET = 33
_MIN_COLS = 11


# Functions ------------------------------------------------------------------------------------------------------------
def decode_lines(text: Union[str, bytes], sink: MutableSequence[AlignmentRecord], target_name: str = None,
                 min_position: int = None, max_position: int = None, predicate: AlignmentPredicate = None):
    """
    Decodes SAM lines and appends the records overlapping the query window to ``sink``.

    Precondition: lines are sorted by reference then position. Once the target reference has been seen, the first
    line on another reference, or past ``max_position``, ends the scan.

    Args:
        text: SAM text, newline delimited. Header lines (``@``) are ignored.
        sink: Anything with ``append``.
        target_name: Reference to keep, or None for any.
        min_position: 0-based start of the query window (inclusive), or None.
        max_position: 0-based end of the query window (inclusive), or None.
        predicate: Optional callable evaluated on each candidate record.
    """
    for record in iter_lines(text.splitlines(), target_name, min_position, max_position, predicate):
        sink.append(record)


def iter_lines(lines: Iterable[Union[str, bytes]], target_name: str = None, min_position: int = None,
               max_position: int = None, predicate: AlignmentPredicate = None
               ) -> Generator[AlignmentRecord, None, None]:
    """
    Generator form of ``decode_lines`` over an iterable of lines.

    Both the record start and the mate position (SAM columns 4 and 8) are converted from 1-based to 0-based, so text
    and binary records agree on coordinates.
    """
    started = False
    for line in lines:
        if isinstance(line, bytes): line = line.decode('latin-1')
        line = line.rstrip('\r\n')
        if not line or line.startswith('@'): continue
        tokens = line.split('\t')
        if len(tokens) < _MIN_COLS: continue

        reference_name = tokens[2]
        flags = int(tokens[1])
        if reference_name == '*' or flags & SamFlag.UNMAPPED: continue  # Unmapped

        start = int(tokens[3]) - 1
        if target_name is not None:
            if reference_name != target_name:
                if started: return  # Off the right edge, we're done
                continue  # Possibly to the left, skip but keep looping
            started = True
        if max_position is not None and start > max_position: return

        operators = CigarParser.parse(tokens[5])
        if min_position is not None and start + CigarParser.reference_length(operators) < min_position:
            continue  # To the left, skip and continue

        record = AlignmentRecord(
            reference_name=reference_name, start=start, flags=flags, mapping_quality=int(tokens[4]),
            read_name=tokens[0], cigar_operators=operators, fragment_length=int(tokens[8]), sequence=tokens[9],
            qualities=_parse_qualities(tokens[10]), tags=_parse_tags(tokens[11:])
        )
        if record.is_mate_mapped:
            mate_reference = tokens[6]
            record.mate = Mate(reference_name if mate_reference == '=' else mate_reference, int(tokens[7]) - 1,
                               not flags & SamFlag.MATE_REVERSE)

        if predicate is None or predicate(record):
            record.blocks, record.insertions = build_blocks(record, operators)
            yield record


def _parse_qualities(qual: str) -> Optional[np.ndarray]:
    if qual == '*': return None
    return np.frombuffer(qual.encode('latin-1'), dtype=np.uint8) - np.uint8(PHRED_OFFSET)


def _parse_tags(items: list[str]) -> dict[str, str]:
    """Parses ``key:type:value`` tags into ``{key: value}``, ignoring the type."""
    tags = {}
    for item in items:
        parts = item.split(':', 2)
        if len(parts) != 3: continue
        tags[parts[0]] = parts[2]
    return tags


# Classes --------------------------------------------------------------------------------------------------------------
class SamReader:
    """
    Streams SAM records from a binary handle, applying the same range filtering as ``decode_lines``.

    Examples:
        >>> with open("reads.sam", "rb") as f:
        ...     for record in SamReader(f, "chr1", 1000, 2000):
        ...         print(record.read_name)
    """
    _CHUNK_SIZE = 65536
    __slots__ = ('_handle', '_target_name', '_min_position', '_max_position', '_predicate')

    def __init__(self, handle: BinaryIO, target_name: str = None, min_position: int = None,
                 max_position: int = None, predicate: AlignmentPredicate = None):
        self._handle = handle
        self._target_name = target_name
        self._min_position = min_position
        self._max_position = max_position
        self._predicate = predicate

    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb): self.close()

    def close(self):
        """Closes the underlying handle."""
        if hasattr(self._handle, 'close'): self._handle.close()

    def _read_lines(self) -> Generator[bytes, None, None]:
        """Yields complete lines, reading the handle in chunks."""
        buf = bytearray()
        while chunk := self._handle.read(self._CHUNK_SIZE):
            buf.extend(chunk)
            pos = 0
            while (nl_pos := buf.find(b'\n', pos)) != -1:
                yield bytes(buf[pos:nl_pos])
                pos = nl_pos + 1
            del buf[:pos]
        if buf: yield bytes(buf)

    def __iter__(self) -> Generator[AlignmentRecord, None, None]:
        yield from iter_lines(self._read_lines(), self._target_name, self._min_position, self._max_position,
                              self._predicate)
