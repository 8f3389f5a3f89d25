import numpy as np
import pytest
from bamlib import DecodeWarning
from bamlib.align.blocks import build_blocks
from bamlib.align.cigar import CigarParser
from bamlib.containers.alignment import AlignmentRecord, CigarOp, CigarOperator, GapType


def _record(cigar: str, start: int = 100, seq: str = None, quals=None) -> AlignmentRecord:
    ops = CigarParser.parse(cigar)
    if seq is None: seq = 'ACGTACGTACGTACGTACGT'[:CigarParser.reference_length(ops) + 10]
    return AlignmentRecord('chr1', start, cigar_operators=ops, sequence=seq, qualities=quals)


class TestBuildBlocks:
    def test_single_match(self):
        record = _record('4M', seq='ACGT', quals=np.array([10, 20, 30, 40], dtype=np.uint8))
        blocks, insertions = build_blocks(record)
        assert len(blocks) == 1 and insertions == []
        block = blocks[0]
        assert (block.start, block.length, block.end, block.sequence) == (100, 4, 104, 'ACGT')
        assert block.gap_type is GapType.NONE
        np.testing.assert_array_equal(block.qualities, [10, 20, 30, 40])

    def test_soft_clip_then_match(self):
        record = _record('2S3M', seq='TTACG', quals=np.arange(5, dtype=np.uint8))
        blocks, _ = build_blocks(record)
        assert (blocks[0].start, blocks[0].sequence) == (100, 'ACG')
        assert blocks[0].gap_type is GapType.SOFT_CLIP
        np.testing.assert_array_equal(blocks[0].qualities, [2, 3, 4])

    def test_deletion_and_skip_gaps(self):
        record = _record('3M2D3M5N2M', seq='AAACCCGG')
        blocks, _ = build_blocks(record)
        assert [(b.start, b.length, b.sequence) for b in blocks] == [(100, 3, 'AAA'), (105, 3, 'CCC'),
                                                                      (113, 2, 'GG')]
        assert [b.gap_type for b in blocks] == [GapType.NONE, GapType.DELETION, GapType.SKIP]

    def test_gap_type_cleared_after_use(self):
        record = _record('2M1D2M2M', seq='AACCGG')
        blocks, _ = build_blocks(record, [CigarOperator(2, CigarOp.MATCH), CigarOperator(1, CigarOp.DELETION),
                                          CigarOperator(2, CigarOp.MATCH), CigarOperator(2, CigarOp.SEQ_MATCH)])
        assert [b.gap_type for b in blocks] == [GapType.NONE, GapType.DELETION, GapType.NONE]

    def test_insertion(self):
        record = _record('3M2I3M', seq='AAATTCCC', quals=np.arange(8, dtype=np.uint8))
        blocks, insertions = build_blocks(record)
        assert [(b.start, b.sequence) for b in blocks] == [(100, 'AAA'), (103, 'CCC')]
        assert len(insertions) == 1
        ins = insertions[0]
        assert (ins.start, ins.length, ins.sequence) == (103, 2, 'TT')
        np.testing.assert_array_equal(ins.qualities, [3, 4])

    def test_hard_clip_and_pad_ignored(self):
        record = _record('5H2M1P2M5H', seq='ACGT')
        blocks, insertions = build_blocks(record)
        assert [(b.start, b.sequence) for b in blocks] == [(100, 'AC'), (102, 'GT')]
        assert insertions == []

    def test_unavailable_sequence(self):
        record = _record('2M1I2M', seq='*')
        blocks, insertions = build_blocks(record)
        assert [b.sequence for b in blocks] == ['*', '*']
        assert insertions[0].sequence == '*'
        assert blocks[0].qualities is None

    def test_blocks_span_length_on_reference(self):
        record = _record('3S10M2I5M3D7M')
        blocks, insertions = build_blocks(record)
        assert blocks[-1].end - record.start == record.length_on_reference
        assert sum(b.length for b in blocks) + 3 == record.length_on_reference

    def test_unknown_operator_warns(self):
        record = _record('2M', seq='ACGT')
        ops = [CigarOperator(2, CigarOp.MATCH), CigarOperator(1, CigarOp.UNKNOWN), CigarOperator(2, CigarOp.MATCH)]
        with pytest.warns(DecodeWarning, match='cigar element'):
            blocks, _ = build_blocks(record, ops)
        assert [(b.start, b.sequence) for b in blocks] == [(100, 'AC'), (102, 'GT')]
