"""
Splits an alignment into the aligned blocks and insertions a renderer draws.
"""
from typing import Iterable, Optional
from warnings import warn

import numpy as np

from bamlib import DecodeWarning
from bamlib.containers.alignment import (
    AlignmentRecord, CigarOp, CigarOperator, GapType, Block, Insertion, UNAVAILABLE
)


# Constants ------------------------------------------------------------------------------------------------------------
_ALIGNED = frozenset((CigarOp.MATCH, CigarOp.SEQ_MATCH, CigarOp.SEQ_MISMATCH))
_REFERENCE_GAPS = {CigarOp.SKIP: GapType.SKIP, CigarOp.DELETION: GapType.DELETION}


# Functions ------------------------------------------------------------------------------------------------------------
def build_blocks(record: AlignmentRecord, operators: Iterable[CigarOperator] = None
                 ) -> tuple[list[Block], list[Insertion]]:
    """
    Splits the record into blocks as specified by its CIGAR operators.

    Each aligned block carries its portion of the read sequence and base qualities. A read sequence of ``*`` means
    the bases were not recorded; every block and insertion then carries ``*`` too. The gap type of a block records
    whether a soft clip, skip or deletion came directly before it.

    Args:
        record: The decoded record, supplying the start position, sequence and qualities.
        operators: The CIGAR operators to walk. Defaults to ``record.cigar_operators``.

    Returns:
        The aligned blocks in reference order and the insertions (possibly empty).
    """
    if operators is None: operators = record.cigar_operators
    blocks, insertions = [], []
    seq, quals = record.sequence, record.qualities
    read_offset, position = 0, record.start
    gap_type = GapType.NONE

    for length, op in operators:
        if op is CigarOp.HARD_CLIP or op is CigarOp.PAD:
            continue
        elif op is CigarOp.SOFT_CLIP:
            read_offset += length
            gap_type = GapType.SOFT_CLIP
        elif op in _REFERENCE_GAPS:
            position += length
            gap_type = _REFERENCE_GAPS[op]
        elif op is CigarOp.INSERTION:
            insertions.append(Insertion(position, length, _slice_seq(seq, read_offset, length),
                                        _slice_quals(quals, read_offset, length)))
            read_offset += length
        elif op in _ALIGNED:
            blocks.append(Block(position, length, _slice_seq(seq, read_offset, length),
                                _slice_quals(quals, read_offset, length), gap_type))
            gap_type = GapType.NONE
            read_offset += length
            position += length
        else:
            warn(f'Error processing cigar element: {length}{op.symbol} in read {record.read_name}', DecodeWarning)

    return blocks, insertions


def _slice_seq(seq: str, offset: int, length: int) -> str:
    return UNAVAILABLE if seq == UNAVAILABLE else seq[offset:offset + length]


def _slice_quals(quals: Optional[np.ndarray], offset: int, length: int) -> Optional[np.ndarray]:
    return None if quals is None else quals[offset:offset + length]
