"""
This module contains the containers produced by the decoders: alignment records, their blocks and insertions, and the
reference dictionary of a BAM header.
"""
from bamlib.containers.alignment import (
    SamFlag, CigarOp, CigarOperator, GapType, Mate, Block, Insertion, AlignmentRecord, UNAVAILABLE
)
from bamlib.containers.reference import ReferenceDictionary, BamHeader
