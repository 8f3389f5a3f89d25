"""
Module for decoding BAM byte buffers and SAM text into alignment records.
"""


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class ParseError(Exception):
    """Base class for fatal format errors; the input cannot be decoded."""

class BadMagicError(ParseError):
    """Raised when a BAM header does not start with the expected magic signature."""

class UnsupportedFlagsError(ParseError):
    """Raised when the alternate BAM header dialect declares flags this decoder has no semantics for."""


# Import submodules to expose the public API
from bamlib.io.bam import (
    BAM_MAGIC, decode_header, decode_alternate_header, decode_reference_dictionary, decode_records, iter_records,
    decode_tags, unpack_sequence, read_header, BamFile
)
from bamlib.io.sam import decode_lines, iter_lines, SamReader
from bamlib.io.open import LocalFetcher, GzipDecompressor
