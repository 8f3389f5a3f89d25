"""
Decoders for the binary BAM format: the header, its reference dictionary, alignment records and their auxiliary tags.

All functions work on an in-memory buffer that has already been decompressed (see ``bamlib.io.open``). Offsets are
always passed explicitly; nothing here holds state between calls, so decodes over disjoint buffers may run in parallel.
"""
from struct import Struct
from typing import Callable, Generator, MutableSequence, Optional, Sequence, Union
from warnings import warn

import numpy as np

from bamlib import DecodeWarning
from bamlib.align.blocks import build_blocks
from bamlib.align.cigar import CigarParser
from bamlib.containers.alignment import AlignmentRecord, CigarOperator, Mate, SamFlag, UNAVAILABLE
from bamlib.containers.reference import BamHeader, ReferenceDictionary
from bamlib.core.cursor import Buffer, read_cstring, read_int32, read_string, read_uint32
from bamlib.io import BadMagicError, UnsupportedFlagsError
from bamlib.io.open import LocalFetcher, GzipDecompressor
from bamlib.utils.protocols import AliasResolver, AlignmentPredicate, BlockDecompressor, ByteRangeFetcher


# Constants ------------------------------------------------------------------------------------------------------------
BAM_MAGIC = b'BAM\x01'
BAM_MAGIC_NUMBER = read_int32(BAM_MAGIC, 0)
_ALTERNATE_MAGIC_NUMBERS = frozenset((BAM_MAGIC_NUMBER, read_int32(b'BAM\x02', 0)))

# 4-bit base codes -> ASCII; 'x' marks codes the format leaves unused
_SEQ_DECODER = np.frombuffer(b'=ACxGxxxTxxxxxxN', dtype=np.uint8)

# block_size, ref_id, pos, bin_mq_nl, flag_nc, l_seq, next_ref_id, next_pos, tlen
_RECORD_PREFIX = Struct('<iiiIIiiii')
_MISSING_QUALITY = 0xFF

_TAG_SIZES = {'A': 1, 'c': 1, 'C': 1, 's': 2, 'S': 2, 'i': 4, 'I': 4, 'f': 4}
_TAG_SCALARS = {'c': Struct('<b'), 'C': Struct('<B'), 's': Struct('<h'), 'S': Struct('<H'), 'i': Struct('<i'),
                'I': Struct('<I'), 'f': Struct('<f')}
_TAG_ARRAYS = {'c': np.dtype('i1'), 'C': np.dtype('u1'), 's': np.dtype('<i2'), 'S': np.dtype('<u2'),
               'i': np.dtype('<i4'), 'I': np.dtype('<u4'), 'f': np.dtype('<f4')}


# Header ---------------------------------------------------------------------------------------------------------------
def decode_reference_dictionary(buf: Buffer, offset: int, n_ref: int, resolver: AliasResolver = None
                                ) -> tuple[ReferenceDictionary, int]:
    """
    Decodes the reference-sequence table embedded in a BAM header.

    Each entry is a 4-byte name length (counting the null terminator), the name, and a 4-byte reference length which
    is not retained.

    Args:
        buf: The decompressed buffer.
        offset: Offset of the first entry.
        n_ref: Number of entries, trusted from the header.
        resolver: Optional callable mapping a native name to its canonical spelling; each canonical name is recorded
            as an alias of the native one.

    Returns:
        The dictionary and the offset just past the last entry.
    """
    names, aliases = [], {}
    for _ in range(n_ref):
        name_length = read_int32(buf, offset)
        name = read_string(buf, offset + 4, name_length - 1)
        names.append(name)
        if resolver is not None: aliases[resolver(name)] = name
        offset += 8 + name_length
    return ReferenceDictionary(names, aliases), offset


def decode_header(buf: Buffer, resolver: AliasResolver = None) -> BamHeader:
    """
    Decodes a BAM header.

    Args:
        buf: Buffer starting at the beginning of the decompressed file.
        resolver: Optional alias resolver, see ``decode_reference_dictionary``.

    Returns:
        The decoded header; ``size`` is the offset of the first alignment record.

    Raises:
        BadMagicError: If the buffer does not start with ``BAM\\1``.
    """
    magic = read_int32(buf, 0)
    if magic != BAM_MAGIC_NUMBER: raise BadMagicError('BAM header contains an invalid BAM magic')
    return _decode_header_body(buf, magic, 4, resolver)


def decode_alternate_header(buf: Buffer, resolver: AliasResolver = None) -> BamHeader:
    """
    Decodes the alternate (BAM2) header dialect, which carries a 4-byte flags field after the magic.

    Raises:
        BadMagicError: If the buffer does not start with a BAM magic.
        UnsupportedFlagsError: If any header flag is set; the format defines no meaning for them.
    """
    magic = read_int32(buf, 0)
    if magic not in _ALTERNATE_MAGIC_NUMBERS: raise BadMagicError('BAM header contains an invalid BAM magic')
    if (flags := read_uint32(buf, 4)) != 0:
        raise UnsupportedFlagsError(f'Unexpected BAM2 header flags decoded as set: {flags:#x}')
    return _decode_header_body(buf, magic, 8, resolver)


def _decode_header_body(buf: Buffer, magic: int, offset: int, resolver: Optional[AliasResolver]) -> BamHeader:
    text_length = read_int32(buf, offset)
    text = read_string(buf, offset + 4, text_length)
    offset += 4 + text_length
    n_ref = read_int32(buf, offset)
    references, offset = decode_reference_dictionary(buf, offset + 4, n_ref, resolver)
    return BamHeader(magic, offset, text, references)


# Records --------------------------------------------------------------------------------------------------------------
def decode_records(buf: Buffer, start_offset: int, sink: MutableSequence[AlignmentRecord],
                   min_position: int = None, max_position: int = None, target_index: int = None,
                   reference_names: Sequence[str] = (), predicate: AlignmentPredicate = None):
    """
    Decodes alignment records from ``start_offset`` and appends those in range to ``sink``.

    Precondition: records are sorted by (reference index, position), as in a coordinate-sorted BAM. The scan relies
    on this to stop at the first record past the target reference or past ``max_position``.

    Args:
        buf: Decompressed buffer beginning at a record boundary.
        start_offset: Offset of the first record.
        sink: Anything with ``append``; receives accepted records in file order.
        min_position: 0-based start of the query window (inclusive), or None for unbounded.
        max_position: 0-based end of the query window (inclusive), or None for unbounded.
        target_index: Reference index to keep, or None to accept any reference.
        reference_names: Names by reference index, e.g. ``header.reference_names``.
        predicate: Optional callable evaluated on each fully decoded candidate record.
    """
    for record in iter_records(buf, start_offset, min_position, max_position, target_index, reference_names,
                               predicate):
        sink.append(record)


def iter_records(buf: Buffer, start_offset: int = 0, min_position: int = None, max_position: int = None,
                 target_index: int = None, reference_names: Sequence[str] = (),
                 predicate: AlignmentPredicate = None) -> Generator[AlignmentRecord, None, None]:
    """
    Generator form of ``decode_records``.

    A record whose declared size runs past the buffer ends the scan silently; it is the cut point of a partially
    fetched range, not an error.

    Yields:
        Accepted records with blocks and insertions populated.
    """
    n = len(buf)
    offset = start_offset
    while offset + _RECORD_PREFIX.size <= n:
        (block_size, ref_id, pos, bin_mq_nl, flag_nc, l_seq, mate_ref_id, mate_pos,
         fragment_length) = _RECORD_PREFIX.unpack_from(buf, offset)
        block_end = offset + block_size + 4
        if block_end > n or block_size < _RECORD_PREFIX.size - 4: return

        if ref_id < 0 or (target_index is not None and ref_id < target_index):
            offset = block_end  # Unmapped, or to the left of the target reference
            continue
        if target_index is not None and ref_id > target_index: return  # Off the right edge, we're done
        if max_position is not None and pos > max_position: return

        mapping_quality = (bin_mq_nl >> 8) & 0xFF
        name_length = bin_mq_nl & 0xFF
        flags = flag_nc >> 16
        n_cigar = flag_nc & 0xFFFF

        p = offset + _RECORD_PREFIX.size
        read_name = read_string(buf, p, max(name_length - 1, 0))
        p += name_length
        operators = CigarParser.unpack(buf, p, n_cigar)
        p += 4 * n_cigar
        if (long_cigar := _decode_long_cigar(buf, block_end, p, l_seq, pos, operators)) is not None:
            operators = long_cigar

        if min_position is not None and pos + CigarParser.reference_length(operators) < min_position:
            offset = block_end  # Ends to the left of the window, skip the sequence work
            continue

        sequence = unpack_sequence(buf, p, l_seq)
        p += (l_seq + 1) >> 1
        qualities = _unpack_qualities(buf, p, l_seq)
        p += max(l_seq, 0)

        mate = None
        if mate_ref_id >= 0:
            mate = Mate(_reference_name(reference_names, mate_ref_id), mate_pos,
                        not flags & SamFlag.MATE_REVERSE)

        record = AlignmentRecord(
            reference_name=_reference_name(reference_names, ref_id), start=pos, flags=flags,
            mapping_quality=mapping_quality, read_name=read_name, cigar_operators=operators,
            fragment_length=fragment_length, sequence=sequence, qualities=qualities, mate=mate,
            tags=bytes(buf[p:block_end])
        )
        if (record.overlaps(min_position, max_position) and
                (predicate is None or predicate(record)) and
                (target_index is None or ref_id == target_index)):
            record.blocks, record.insertions = build_blocks(record, operators)
            yield record
        offset = block_end


def _reference_name(names: Sequence[str], index: int) -> Optional[str]:
    return names[index] if 0 <= index < len(names) else None


def unpack_sequence(buf: Buffer, offset: int, length: int) -> str:
    """
    Decodes ``length`` bases packed two per byte (high nibble first) starting at ``offset``.

    Examples:
        >>> unpack_sequence(b'\\x14', 0, 2)
        'AG'
        >>> unpack_sequence(b'\\x12\\x80', 0, 3)
        'ACT'
    """
    if length <= 0: return UNAVAILABLE
    packed = np.frombuffer(buf, dtype=np.uint8, count=(length + 1) >> 1, offset=offset)
    codes = np.empty(packed.size * 2, dtype=np.uint8)
    codes[0::2] = packed >> 4
    codes[1::2] = packed & 0x0F
    return _SEQ_DECODER[codes[:length]].tobytes().decode('ascii')


def _unpack_qualities(buf: Buffer, offset: int, length: int) -> Optional[np.ndarray]:
    if length <= 0 or buf[offset] == _MISSING_QUALITY: return None  # Quality not stored
    return np.frombuffer(buf, dtype=np.uint8, count=length, offset=offset).copy()


def _decode_long_cigar(buf: Buffer, block_end: int, seq_offset: int, l_seq: int, start: int,
                       operators: list[CigarOperator]) -> Optional[list[CigarOperator]]:
    """
    Recovers a CIGAR too long for the inline field from the record's ``CG:B,I`` tag.

    Returns:
        The full operator list, or None to keep the inline operators.
    """
    if len(operators) != 1 or start < 0: return None
    p = seq_offset + ((l_seq + 1) >> 1) + max(l_seq, 0)
    found = False
    while p + 4 < block_end:
        if buf[p] == 0x43 and buf[p + 1] == 0x47:  # 'CG'
            found = True
            break
        tag_type = chr(buf[p + 2])
        if tag_type == 'B':
            if p + 8 > block_end: return None  # Array header cut by the record end
            p += 8 + _TAG_SIZES.get(chr(buf[p + 3]), 0) * max(read_int32(buf, p + 4), 0)
        elif tag_type == 'Z' or tag_type == 'H':
            p = read_cstring(buf, p + 3, block_end)[1]
        else:
            p += 3 + _TAG_SIZES.get(tag_type, 0)
    if not found: return None
    if chr(buf[p + 2]) != 'B' or chr(buf[p + 3]) != 'I': return None

    if p + 8 > block_end:
        warn('CG tag is cut off by the end of the record; keeping the inline CIGAR', DecodeWarning)
        return None
    n_cigar = read_int32(buf, p + 4)
    cigar_offset = p + 8
    if n_cigar <= 0 or cigar_offset + n_cigar * 4 > block_end:
        # TODO: decide whether an overrunning CG array should be fatal for the record instead of falling back
        warn(f'CG tag declares {n_cigar} operators, which do not fit the record; keeping the inline CIGAR',
             DecodeWarning)
        return None
    return CigarParser.unpack(buf, cigar_offset, n_cigar)


# Tags -----------------------------------------------------------------------------------------------------------------
def decode_tags(data: Buffer) -> dict[str, Union[str, int, float, np.ndarray]]:
    """
    Decodes a binary auxiliary tag region into a dict.

    Values are typed by their tag type: ``A``, ``Z`` and ``H`` give strings, integer types give ints, ``f`` gives a
    float and ``B`` gives a numpy array of the element type.

    Examples:
        >>> decode_tags(b'NMC\\x02RGZgrp1\\x00')
        {'NM': 2, 'RG': 'grp1'}
    """
    tags = {}
    n = len(data)
    p = 0
    while p + 3 <= n:
        key = read_string(data, p, 2)
        tag_type = chr(data[p + 2])
        p += 3
        if tag_type == 'A':
            tags[key] = chr(data[p])
            p += 1
        elif scalar := _TAG_SCALARS.get(tag_type):
            tags[key] = scalar.unpack_from(data, p)[0]
            p += scalar.size
        elif tag_type == 'Z' or tag_type == 'H':
            tags[key], p = read_cstring(data, p, n)
        elif tag_type == 'B' and (dtype := _TAG_ARRAYS.get(chr(data[p]))) is not None:
            count = read_int32(data, p + 1)
            tags[key] = np.frombuffer(data, dtype=dtype, count=count, offset=p + 5).copy()
            p += 5 + dtype.itemsize * count
        else:
            warn(f'Cannot decode tag {key} of type {tag_type!r}; remaining tags dropped', DecodeWarning)
            break
    return tags


# Collaborator wiring --------------------------------------------------------------------------------------------------
def read_header(location, fetcher: ByteRangeFetcher, decompressor: BlockDecompressor,
                resolver: AliasResolver = None, length: int = 65536) -> BamHeader:
    """
    Fetches the start of a BAM file, decompresses it and decodes the header.

    Args:
        location: Anything the fetcher accepts (path, URL, handle).
        fetcher: Byte-range fetch service.
        decompressor: Block decompression service.
        resolver: Optional alias resolver.
        length: Number of compressed bytes to fetch; must cover the whole header. None fetches the entire file.
    """
    return decode_header(decompressor.decompress(fetcher.fetch(location, 0, length)), resolver)


class BamFile:
    """
    Range queries over a whole BAM file by linear scan.

    The file is fetched and decompressed once, on first use. Without an index every query scans from the first
    record, stopping early once it passes the requested range.

    Examples:
        >>> bam = BamFile("reads.bam")
        >>> for record in bam.query("chr1", 1000, 2000):
        ...     print(record.read_name, record.cigar)
    """
    __slots__ = ('_location', '_fetcher', '_decompressor', '_resolver', '_data', '_header')

    def __init__(self, location, fetcher: ByteRangeFetcher = None, decompressor: BlockDecompressor = None,
                 resolver: AliasResolver = None):
        self._location = location
        self._fetcher = fetcher or LocalFetcher()
        self._decompressor = decompressor or GzipDecompressor()
        self._resolver = resolver
        self._data: Optional[bytes] = None
        self._header: Optional[BamHeader] = None

    @property
    def data(self) -> bytes:
        if self._data is None:
            self._data = self._decompressor.decompress(self._fetcher.fetch(self._location, 0, None))
        return self._data

    @property
    def header(self) -> BamHeader:
        if self._header is None: self._header = decode_header(self.data, self._resolver)
        return self._header

    def query(self, reference: Union[str, int], start: int = None, end: int = None,
              predicate: Callable[[AlignmentRecord], bool] = None) -> list[AlignmentRecord]:
        """
        Returns the records on ``reference`` overlapping the closed window ``[start, end]``.

        Args:
            reference: Reference name, alias or index.
            start: 0-based window start, or None.
            end: 0-based window end, or None.
            predicate: Optional record filter.
        """
        header = self.header
        if (index := header.reference_index(reference)) is None: return []
        records = []
        decode_records(self.data, header.size, records, start, end, index, header.reference_names, predicate)
        return records
