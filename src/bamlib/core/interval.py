"""Genomic interval representation with strand, used for record spans and query windows."""
from typing import Union, Any, ClassVar
from enum import IntEnum

import numpy as np


# Classes --------------------------------------------------------------------------------------------------------------
class Strand(IntEnum):
    """
    Enumeration for genomic strands.
    """
    FORWARD = 1
    REVERSE = -1
    UNSTRANDED = 0
    _STR_CACHE: ClassVar[dict]
    _FROM_STR_CACHE: ClassVar[dict]

    def __str__(self): return self._STR_CACHE[self]

    @classmethod
    def from_bool(cls, forward: bool) -> 'Strand': return cls.FORWARD if forward else cls.REVERSE

    @classmethod
    def from_symbol(cls, s: Any) -> 'Strand':
        if s is None: return cls.UNSTRANDED
        if isinstance(s, cls): return s
        if isinstance(s, bool): return cls.from_bool(s)
        if isinstance(s, int):
            try: return cls(s)
            except ValueError: return cls.UNSTRANDED
        if isinstance(s, bytes): s = s.decode('ascii')
        if isinstance(s, str): return cls._FROM_STR_CACHE.get(s, cls.UNSTRANDED)
        return cls.UNSTRANDED

    @classmethod
    def _init_caches(cls):
        cls._STR_CACHE = {cls.FORWARD: '+', cls.REVERSE: '-', cls.UNSTRANDED: '.'}
        cls._FROM_STR_CACHE = {'+': cls.FORWARD, '-': cls.REVERSE, '.': cls.UNSTRANDED}


Strand._init_caches()


class Interval:
    """
    Immutable genomic interval. Safe for hashing and use in sets/dicts.

    Attributes:
        start: The start position (0-based, inclusive).
        end: The end position (0-based, exclusive).
        strand: The strand (FORWARD, REVERSE, or UNSTRANDED).
    """
    __slots__ = ('_start', '_end', '_strand')

    def __init__(self, start: int, end: int, strand: Any = None):
        self._start: int = int(start)
        self._end: int = int(end)
        self._strand: Strand = Strand.from_symbol(strand)

    @property
    def start(self): return self._start
    @property
    def end(self): return self._end
    @property
    def strand(self) -> Strand: return self._strand
    def __hash__(self): return hash((self._start, self._end, self._strand))
    def __repr__(self): return f"{self._start}:{self._end}({self._strand})"
    def __len__(self): return max(0, self._end - self._start)
    def __iter__(self): return iter((self._start, self._end, self._strand))

    def __array__(self, dtype=None, copy=None):
        return np.array([self._start, self._end, self._strand], dtype=dtype or np.int32)

    def __eq__(self, other):
        if not isinstance(other, Interval): return False
        return (self._start == other._start and
                self._end == other._end and
                self._strand == other._strand)

    def __contains__(self, item: Union[int, 'Interval']):
        if isinstance(item, Interval): return self._start <= item.start and item.end <= self._end
        return self._start <= item < self._end

    def overlaps(self, start: int = None, end: int = None) -> bool:
        """
        Tests whether the closed window ``[start, end]`` touches this interval.

        The window is closed at both ends so that a read ending exactly at ``start`` is still reported, which is what
        range queries over alignments expect. ``None`` leaves that side of the window unbounded.

        Examples:
            >>> Interval(10, 20).overlaps(20, 30)
            True
            >>> Interval(10, 20).overlaps(21, 30)
            False
        """
        if end is not None and self._start > end: return False
        if start is not None and self._end < start: return False
        return True
