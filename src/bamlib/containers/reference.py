"""
Containers for the reference-sequence dictionary and decoded BAM header.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Iterable, Optional, Union


# Classes --------------------------------------------------------------------------------------------------------------
class ReferenceDictionary:
    """
    Ordered, immutable table of the reference sequences declared in a BAM header.

    Holds the names by index, the name to index mapping, and an alias table mapping an externally supplied canonical
    name (e.g. ``1`` for ``chr1``) to the native spelling used in the file.

    Examples:
        >>> refs = ReferenceDictionary(['chr1', 'chr2'], aliases={'1': 'chr1'})
        >>> refs.index_of('1')
        0
        >>> refs[1]
        'chr2'
    """
    __slots__ = ('_names', '_index', '_aliases')

    def __init__(self, names: Iterable[str] = (), aliases: Mapping[str, str] = None):
        self._names: tuple[str, ...] = tuple(names)
        self._index = MappingProxyType({name: i for i, name in enumerate(self._names)})
        self._aliases = MappingProxyType(dict(aliases) if aliases else {})

    @property
    def names(self) -> tuple[str, ...]: return self._names
    @property
    def name_to_index(self) -> Mapping[str, int]: return self._index
    @property
    def aliases(self) -> Mapping[str, str]: return self._aliases
    def __len__(self): return len(self._names)
    def __iter__(self): return iter(self._names)
    def __getitem__(self, index: int) -> str: return self._names[index]
    def __repr__(self): return f"ReferenceDictionary({len(self)} references)"

    def __contains__(self, name: str) -> bool: return name in self._index or name in self._aliases

    def __eq__(self, other):
        if not isinstance(other, ReferenceDictionary): return False
        return self._names == other._names and self._aliases == other._aliases

    def native_name(self, name: str) -> str:
        """Translates an alias to the name used in the file; unknown names are returned unchanged."""
        return self._aliases.get(name, name)

    def index_of(self, name: str) -> Optional[int]:
        """Index of a reference by native name or alias, or None if it is not declared."""
        return self._index.get(self.native_name(name))


@dataclass(frozen=True, slots=True)
class BamHeader:
    """
    Decoded BAM header.

    Attributes:
        magic_number: The magic signature read as a little-endian int32.
        size: Offset of the first byte after the header, i.e. where the first alignment record starts.
        text: The embedded SAM text header, not further parsed.
        references: The reference dictionary.
    """
    magic_number: int
    size: int
    text: str = ''
    references: ReferenceDictionary = field(default_factory=ReferenceDictionary)

    @property
    def reference_names(self) -> tuple[str, ...]: return self.references.names

    def reference_index(self, name: Union[str, int]) -> Optional[int]:
        """Resolves a reference name or alias to its index; integers are passed through."""
        if isinstance(name, int): return name
        return self.references.index_of(name)
