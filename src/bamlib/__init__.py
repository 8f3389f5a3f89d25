"""
Top-level module for decoding BAM and SAM alignment data into range-queryable records.
"""


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class BamlibWarning(Warning): pass
class DecodeWarning(BamlibWarning): pass
