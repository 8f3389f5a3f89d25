"""
Module containing dependency management and collaborator protocols.
"""
from bamlib.utils.resources import RESOURCES, jit
from bamlib.utils.protocols import ByteRangeFetcher, BlockDecompressor, AliasResolver, AlignmentPredicate
