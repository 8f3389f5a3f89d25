"""
Module for decoding CIGAR strings and packed BAM CIGAR arrays.
"""
from typing import Union, Iterable

import numpy as np

from bamlib.containers.alignment import CigarOp, CigarOperator
from bamlib.core.cursor import Buffer
from bamlib.utils.resources import jit


# Classes --------------------------------------------------------------------------------------------------------------
class CigarParser:
    """Parses CIGAR strings and packed BAM operator words into CigarOperators"""
    # Fast lookup for bytes -> integer op codes
    _BYTE_TO_OP = np.full(256, CigarOp.UNKNOWN, dtype=np.uint8)
    for op in CigarOp: _BYTE_TO_OP[ord(op.symbol)] = op
    del op

    # BAM op codes 0-15 -> CigarOp, reserved codes collapse to UNKNOWN
    _CODE_TO_OP = np.array([CigarOp.from_code(c) for c in range(16)], dtype=np.uint8)
    _OPS = tuple(CigarOp)

    @classmethod
    def parse(cls, cigar: Union[str, bytes]) -> list[CigarOperator]:
        """
        Parses a CIGAR string, merging adjacent operators of the same kind.

        Args:
            cigar: The CIGAR string (e.g., "5M5M3I"). ``*`` or empty gives no operators.

        Returns:
            The merged operators, e.g. ``[(10, MATCH), (3, INSERTION)]``.
        """
        if isinstance(cigar, str): cigar = cigar.encode('ascii')
        if not cigar or cigar == b'*': return []
        ops, counts = _parse_cigar_kernel(np.frombuffer(cigar, dtype=np.uint8), cls._BYTE_TO_OP)
        lookup = cls._OPS
        return [CigarOperator(n, lookup[o]) for o, n in zip(ops.tolist(), counts.tolist())]

    @classmethod
    def unpack(cls, buf: Buffer, offset: int, count: int) -> list[CigarOperator]:
        """
        Decodes ``count`` packed little-endian CIGAR words starting at ``offset``.

        Each word holds ``length << 4 | code``.
        """
        if count <= 0: return []
        words = np.frombuffer(buf, dtype='<u4', count=count, offset=offset)
        lookup = cls._OPS
        return [CigarOperator(n, lookup[o]) for o, n in
                zip(cls._CODE_TO_OP[words & 0xF].tolist(), (words >> 4).tolist())]

    @staticmethod
    def pack(operators: Iterable[CigarOperator]) -> bytes:
        """Packs operators into the BAM word layout; the inverse of ``unpack``."""
        words = np.array([(o.length << 4) | o.op for o in operators], dtype='<u4')
        return words.tobytes()

    @staticmethod
    def reference_length(operators: Iterable[CigarOperator]) -> int:
        """Sum of the lengths of reference-consuming operators (M, D, N, =, X)."""
        return sum(o.length for o in operators if o.op.consumes_reference)


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _parse_cigar_kernel(cigar, map_table):
    """Parses CIGAR bytes into op codes and counts, summing runs of the same op."""
    n = len(cigar)
    ops = np.empty(n, dtype=np.uint8)
    counts = np.empty(n, dtype=np.int64)
    idx = 0; curr_count = 0
    for i in range(n):
        b = int(cigar[i])
        if 48 <= b <= 57:
            curr_count = (curr_count * 10) + (b - 48)
        else:
            op = map_table[b]
            if idx > 0 and ops[idx - 1] == op:
                counts[idx - 1] += curr_count
            else:
                ops[idx] = op; counts[idx] = curr_count
                idx += 1
            curr_count = 0
    return ops[:idx], counts[:idx]
