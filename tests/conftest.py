import struct

import pytest

from bamlib.align.cigar import CigarParser
from bamlib.containers.alignment import CigarOp, CigarOperator

_BASE_CODES = {'=': 0, 'A': 1, 'C': 2, 'G': 4, 'T': 8, 'N': 15}


def pack_sequence(seq: str) -> bytes:
    if seq == '*': return b''
    codes = [_BASE_CODES[b] for b in seq]
    if len(codes) % 2: codes.append(0)
    return bytes((codes[i] << 4) | codes[i + 1] for i in range(0, len(codes), 2))


def operators(*pairs) -> list[CigarOperator]:
    return [CigarOperator(n, op) for n, op in pairs]


def build_header(references=(('chr1', 1000),), text='@HD\tVN:1.6\n', alternate=False, header_flags=0,
                 magic=b'BAM\x01') -> bytes:
    out = bytearray(magic)
    if alternate: out += struct.pack('<I', header_flags)
    encoded = text.encode('ascii')
    out += struct.pack('<i', len(encoded)) + encoded + struct.pack('<i', len(references))
    for name, length in references:
        name = name.encode('ascii') + b'\x00'
        out += struct.pack('<i', len(name)) + name + struct.pack('<i', length)
    return bytes(out)


def build_record(ref_id=0, pos=0, read_name='read1', cigar=((4, CigarOp.MATCH),), seq='ACGT', quals=(30, 31, 32, 33),
                 flags=0, mapq=60, mate_ref_id=-1, mate_pos=-1, tlen=0, tags=b'', n_cigar=None) -> bytes:
    name = read_name.encode('ascii') + b'\x00'
    packed_cigar = CigarParser.pack(operators(*cigar))
    l_seq = 0 if seq == '*' else len(seq)
    qual_bytes = bytes(quals) if quals is not None else b'\xff' * l_seq
    n_cigar = len(cigar) if n_cigar is None else n_cigar
    body = struct.pack('<iiIIiiii', ref_id, pos, (mapq << 8) | len(name), (flags << 16) | n_cigar, l_seq,
                       mate_ref_id, mate_pos, tlen)
    body += name + packed_cigar + pack_sequence(seq) + qual_bytes + tags
    return struct.pack('<i', len(body)) + body


def cg_tag(*pairs, subtype=b'I', count=None) -> bytes:
    packed = CigarParser.pack(operators(*pairs))
    return b'CGB' + subtype + struct.pack('<i', len(pairs) if count is None else count) + packed


@pytest.fixture
def make_header(): return build_header


@pytest.fixture
def make_record(): return build_record


@pytest.fixture
def make_cg_tag(): return cg_tag
