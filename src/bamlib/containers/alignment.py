"""
Containers for decoded alignment records and the geometry derived from their CIGAR operators.
"""
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import NamedTuple, Optional, Iterable, ClassVar, Any

import numpy as np

from bamlib.core.interval import Interval, Strand


# Constants ------------------------------------------------------------------------------------------------------------
UNAVAILABLE = '*'  # Sentinel for a sequence that was not recorded


# Classes --------------------------------------------------------------------------------------------------------------
class SamFlag(IntFlag):
    """Bitwise flags of a SAM/BAM record."""
    PAIRED = 0x1
    PROPER_PAIR = 0x2
    UNMAPPED = 0x4
    MATE_UNMAPPED = 0x8
    REVERSE = 0x10
    MATE_REVERSE = 0x20
    FIRST_OF_PAIR = 0x40
    SECOND_OF_PAIR = 0x80
    SECONDARY = 0x100
    QC_FAIL = 0x200
    DUPLICATE = 0x400
    SUPPLEMENTARY = 0x800


class CigarOp(IntEnum):
    """
    CIGAR operations, valued by their BAM operation code.

    Codes 9-15 are reserved by the format and all map to ``UNKNOWN``, rendered as ``?``.
    """
    MATCH = 0
    INSERTION = 1
    DELETION = 2
    SKIP = 3
    SOFT_CLIP = 4
    HARD_CLIP = 5
    PAD = 6
    SEQ_MATCH = 7
    SEQ_MISMATCH = 8
    UNKNOWN = 9
    _SYMBOLS: ClassVar[str]
    _FROM_SYMBOL: ClassVar[dict]
    _REFERENCE_CONSUMERS: ClassVar[frozenset]
    _QUERY_CONSUMERS: ClassVar[frozenset]

    @property
    def symbol(self) -> str: return self._SYMBOLS[self]
    @property
    def consumes_reference(self) -> bool: return self in self._REFERENCE_CONSUMERS
    @property
    def consumes_query(self) -> bool: return self in self._QUERY_CONSUMERS

    @classmethod
    def from_code(cls, code: int) -> 'CigarOp':
        return cls(code) if 0 <= code < cls.UNKNOWN else cls.UNKNOWN

    @classmethod
    def from_symbol(cls, symbol: str) -> 'CigarOp': return cls._FROM_SYMBOL.get(symbol, cls.UNKNOWN)

    @classmethod
    def _init_caches(cls):
        cls._SYMBOLS = 'MIDNSHP=X?'
        cls._FROM_SYMBOL = {s: cls(i) for i, s in enumerate(cls._SYMBOLS[:-1])}
        cls._REFERENCE_CONSUMERS = frozenset(
            (cls.MATCH, cls.DELETION, cls.SKIP, cls.SEQ_MATCH, cls.SEQ_MISMATCH))
        cls._QUERY_CONSUMERS = frozenset(
            (cls.MATCH, cls.INSERTION, cls.SOFT_CLIP, cls.SEQ_MATCH, cls.SEQ_MISMATCH))


CigarOp._init_caches()


class CigarOperator(NamedTuple):
    """A single run-length encoded CIGAR element."""
    length: int
    op: CigarOp

    def __str__(self): return f'{self.length}{self.op.symbol}'


class GapType(IntEnum):
    """What preceded an aligned block on the read."""
    NONE = 0
    SOFT_CLIP = 1
    SKIP = 2
    DELETION = 3


@dataclass(frozen=True, slots=True)
class Mate:
    """
    Location of the other read of a pair.

    Attributes:
        reference_name: Reference the mate aligned to.
        position: 0-based mate start. SAM text positions are shifted down by one on decode.
        strand: True if the mate is on the forward strand.
    """
    reference_name: Optional[str]
    position: int
    strand: bool


@dataclass(frozen=True, slots=True, eq=False)
class Block:
    """A maximal run of read bases aligned one-to-one against the reference."""
    start: int
    length: int
    sequence: str
    qualities: Optional[np.ndarray]
    gap_type: GapType = GapType.NONE

    @property
    def end(self) -> int: return self.start + self.length


@dataclass(frozen=True, slots=True, eq=False)
class Insertion:
    """Read bases with no reference coordinate, anchored at the reference position they follow."""
    start: int
    length: int
    sequence: str
    qualities: Optional[np.ndarray]


class AlignmentRecord:
    """
    A decoded SAM/BAM alignment.

    Binary and text sources produce the same shape. For binary records the auxiliary tags are kept as the raw tag
    bytes of the record and only decoded when ``tags`` is first accessed; text records carry an already decoded
    ``dict``.

    Examples:
        >>> record.reference_name, record.start, record.cigar
        ('chr1', 99, '50M')
        >>> [(b.start, b.length) for b in record.blocks]
        [(99, 50)]
    """
    __slots__ = ('reference_name', 'start', 'flags', 'mapping_quality', 'read_name', 'cigar_operators',
                 'length_on_reference', 'fragment_length', 'sequence', 'qualities', 'mate', 'blocks', 'insertions',
                 '_tags')

    def __init__(self, reference_name: Optional[str], start: int, flags: int = 0, mapping_quality: int = 0,
                 read_name: str = '', cigar_operators: Iterable[CigarOperator] = (), fragment_length: int = 0,
                 sequence: str = UNAVAILABLE, qualities: Optional[np.ndarray] = None, mate: Optional[Mate] = None,
                 tags: Any = None):
        self.reference_name = reference_name
        self.start = start
        self.flags = flags
        self.mapping_quality = mapping_quality
        self.read_name = read_name
        self.cigar_operators: list[CigarOperator] = list(cigar_operators)
        self.length_on_reference = sum(o.length for o in self.cigar_operators if o.op.consumes_reference)
        self.fragment_length = fragment_length
        self.sequence = sequence
        self.qualities = qualities
        self.mate = mate
        self.blocks: list[Block] = []
        self.insertions: list[Insertion] = []
        self._tags = tags

    def __repr__(self):
        return f"AlignmentRecord({self.read_name}, {self.reference_name}:{self.start}-{self.end}, {self.cigar})"

    @property
    def cigar(self) -> str:
        """Canonical CIGAR string of the operators."""
        return ''.join(map(str, self.cigar_operators)) if self.cigar_operators else UNAVAILABLE

    @property
    def end(self) -> int: return self.start + self.length_on_reference
    @property
    def strand(self) -> bool: return not self.flags & SamFlag.REVERSE
    @property
    def interval(self) -> Interval: return Interval(self.start, self.end, Strand.from_bool(self.strand))

    @property
    def tag_bytes(self) -> Optional[bytes]:
        """The undecoded binary tag region, or None for text records."""
        return self._tags if isinstance(self._tags, bytes) else None

    @property
    def tags(self) -> dict:
        """Auxiliary tags keyed by their two-character name. Binary tags are decoded on first access."""
        if self._tags is None: return {}
        if isinstance(self._tags, bytes):
            from bamlib.io.bam import decode_tags
            self._tags = decode_tags(self._tags)
        return self._tags

    def set_cigar(self, operators: Iterable[CigarOperator]):
        """Replaces the CIGAR operators and recomputes the length on reference."""
        self.cigar_operators = list(operators)
        self.length_on_reference = sum(o.length for o in self.cigar_operators if o.op.consumes_reference)

    def overlaps(self, min_position: int = None, max_position: int = None) -> bool:
        """Whether the reference span touches the closed window ``[min_position, max_position]``."""
        return self.interval.overlaps(min_position, max_position)

    # Flag predicates
    @property
    def is_paired(self) -> bool: return bool(self.flags & SamFlag.PAIRED)
    @property
    def is_proper_pair(self) -> bool: return bool(self.flags & SamFlag.PROPER_PAIR)
    @property
    def is_mapped(self) -> bool: return not self.flags & SamFlag.UNMAPPED
    @property
    def is_mate_mapped(self) -> bool: return self.is_paired and not self.flags & SamFlag.MATE_UNMAPPED
    @property
    def is_first_of_pair(self) -> bool: return bool(self.flags & SamFlag.FIRST_OF_PAIR)
    @property
    def is_second_of_pair(self) -> bool: return bool(self.flags & SamFlag.SECOND_OF_PAIR)
    @property
    def is_secondary(self) -> bool: return bool(self.flags & SamFlag.SECONDARY)
    @property
    def is_supplementary(self) -> bool: return bool(self.flags & SamFlag.SUPPLEMENTARY)
    @property
    def is_duplicate(self) -> bool: return bool(self.flags & SamFlag.DUPLICATE)
    @property
    def is_failed_qc(self) -> bool: return bool(self.flags & SamFlag.QC_FAIL)
