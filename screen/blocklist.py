"""
Block set and block decision policy.

The block set is the collection of application identifiers that must not be
used during a focus session. Identifiers are compared case-insensitively and
exactly: "com.example.App" blocks "com.example.app" but never
"com.example.app.helper".
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)


def normalize_identifier(identifier: Optional[str]) -> Optional[str]:
    """
    Canonicalise an application identifier for membership tests.

    Args:
        identifier: Raw identifier (package name, bundle id, process name).

    Returns:
        Casefolded, stripped identifier, or None if nothing usable remains.
    """
    if not isinstance(identifier, str):
        return None
    normalized = identifier.strip().casefold()
    return normalized or None


@dataclass(frozen=True)
class BlockSet:
    """
    Immutable set of blocked application identifiers.

    Replacing the block set means swapping the whole object, so a poll never
    observes a half-updated set.
    """
    identifiers: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_iterable(cls, identifiers: Optional[Iterable[str]]) -> 'BlockSet':
        """
        Build a block set from raw identifiers.

        A lone string is taken as a single identifier rather than split into
        characters. Non-string and blank entries are dropped with a warning.
        """
        if isinstance(identifiers, str):
            identifiers = [identifiers]
        normalized = set()
        for raw in identifiers or ():
            value = normalize_identifier(raw)
            if value is None:
                logger.warning(f"Ignoring invalid blocked app identifier: {raw!r}")
                continue
            normalized.add(value)
        return cls(frozenset(normalized))

    def __contains__(self, identifier: object) -> bool:
        value = normalize_identifier(identifier)  # type: ignore[arg-type]
        return value is not None and value in self.identifiers

    def __len__(self) -> int:
        return len(self.identifiers)

    def __bool__(self) -> bool:
        return bool(self.identifiers)

    def to_list(self) -> List[str]:
        """Sorted identifiers, for display and persistence."""
        return sorted(self.identifiers)


EMPTY_BLOCK_SET = BlockSet()


def should_block(identifier: Optional[str], block_set: BlockSet) -> bool:
    """
    Decide whether the resolved foreground application must be blocked.

    Pure function: no state and no side effects. A missing identifier never
    starts a new block.

    Args:
        identifier: Resolved foreground identifier, or None.
        block_set: Current block set.

    Returns:
        True if the identifier is in the block set.
    """
    if identifier is None:
        return False
    return identifier in block_set
