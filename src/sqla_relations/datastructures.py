from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from typing import Any, TypeVar


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Immutable, hashable, insertion-ordered mapping.

    Join edges keep their ``ON`` column pairs and extra join parameters in a
    frozendict so that an edge cannot be altered once it is part of a graph,
    and so that two edges built from the same arguments compare equal.

    Example:
        >>> on = frozendict({"address_id": "id"})
        >>> on["address_id"]
        'id'
        >>> on.copy(city_id="id")
        <frozendict {'address_id': 'id', 'city_id': 'id'}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._dict

    def copy(self, **add_or_replace: Any) -> Self:
        """Return a new frozendict with *add_or_replace* merged over this one."""
        return type(self)(self, **add_or_replace)

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        # values may be unhashable (e.g. list parameters), so hash lazily
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash
