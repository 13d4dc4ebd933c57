import logging
from typing import Any, Iterable, Iterator

import numpy as np

from Colony.IndexTable import GROWTH_FACTOR, MIN_CAPACITY, IndexTable, resized

logger = logging.getLogger(__name__)


class PackedStore:
    """
    Cache-friendly packed associative container.

    Values live in one contiguous numpy buffer with no gaps; callers refer to
    them through integer identifiers that stay valid while other values are
    added or removed. Lookup is two array reads: `elements[id_to_slot[id]]`.
    Removing a value moves the last value into the hole, so the buffer stays
    dense and iteration is a straight walk over it.

    Suited to game entities, render resources, pooled objects and similar
    workloads that want O(1) insert/lookup/remove plus fast iteration.

    Caveats:
      - The caller does not pick the identifiers.
      - Identifiers are reused. After `remove(a)`, the next `insert` may
        return `a` again, and the old handle then refers to the new value.
      - Values are not position-stable; views into the buffer are only good
        until the next insert, remove or clear.

    Usage:
        library = PackedStore()
        book = library.insert("Foucault's Pendulum")
        library.get(book)
    """

    def __init__(self, values: Iterable = (), capacity: int = 0, dtype=object):
        """
        Args:
            values: Initial values, inserted in order.
            capacity: Number of elements to allocate room for up front. Only
                an allocation hint; behaviour is identical for any value.
            dtype: numpy dtype of the element buffer. The default `object`
                stores arbitrary Python values; a numeric dtype packs them.
        """
        if capacity < 0:
            raise ValueError(f"Capacity cannot be negative: {capacity}")
        self._index = IndexTable(capacity)
        self._elements = np.empty(capacity, dtype=dtype)
        self._length = 0
        self.extend(values)

    @classmethod
    def with_capacity(cls, capacity: int, dtype=object) -> "PackedStore":
        return cls(capacity=capacity, dtype=dtype)

    @property
    def dtype(self) -> np.dtype:
        return self._elements.dtype

    @property
    def capacity(self) -> int:
        return len(self._elements)

    def __len__(self) -> int:
        return self._length

    def __contains__(self, item_id: int) -> bool:
        return self._index.to_slot(item_id) is not None

    def insert(self, value: Any) -> int:
        """Appends `value` to the buffer and returns its new identifier."""
        slot = self._length
        if slot == len(self._elements):
            self._grow(slot + 1)
        # Write first: if the dtype rejects the value nothing else has changed.
        self._elements[slot] = value
        item_id = self._index.insert(slot)
        self._length += 1
        return item_id

    def extend(self, values: Iterable) -> list[int]:
        return [self.insert(value) for value in values]

    def get(self, item_id: int, default: Any = None) -> Any:
        """Value stored under `item_id`, or `default` if it is not live."""
        slot = self._index.to_slot(item_id)
        if slot is None:
            return default
        return self._elements[slot]

    def set(self, item_id: int, value: Any) -> bool:
        """
        Overwrites the value stored under `item_id`.
        Returns False, changing nothing, if the identifier is not live.
        """
        slot = self._index.to_slot(item_id)
        if slot is None:
            return False
        self._elements[slot] = value
        return True

    def get_unchecked(self, item_id: int) -> Any:
        """
        Like get(), without the liveness check.

        Only for identifiers known to be live (just returned by insert, or
        already checked with get or `in`). A dead identifier is a caller bug:
        it trips an assertion in normal runs and, under `python -O`, raises
        numpy's IndexError or returns whatever value reused the identifier.
        """
        return self._elements[self._index.to_slot_unchecked(item_id)]

    def set_unchecked(self, item_id: int, value: Any) -> None:
        """Like set(), with the same contract as get_unchecked()."""
        self._elements[self._index.to_slot_unchecked(item_id)] = value

    def remove(self, item_id: int) -> None:
        """Removes `item_id` and its value. Unknown or removed ids are ignored."""
        slot = self._index.remove(item_id, self._length - 1)
        if slot is not None:
            self._swap_remove(slot)

    def pop(self, item_id: int, default: Any = None) -> Any:
        """Removes `item_id` and returns its value, or `default` if it was not live."""
        slot = self._index.to_slot(item_id)
        if slot is None:
            return default
        value = self._elements[slot]
        self.remove(item_id)
        return value

    def _swap_remove(self, slot: int) -> None:
        last = self._length - 1
        if slot != last:
            self._elements[slot] = self._elements[last]
        if self._elements.dtype.hasobject:
            # Drop the buffer's reference to the removed value.
            self._elements[last] = None
        self._length = last

    def clear(self) -> None:
        """
        Removes everything. Every identifier issued so far becomes invalid and
        numbering restarts at 0.
        """
        if self._length:
            logger.debug("Clearing %d elements", self._length)
        self._index.clear()
        if self._elements.dtype.hasobject:
            self._elements[:self._length] = None
        self._length = 0

    def reserve(self, additional: int) -> None:
        """Makes room for `additional` more values without reallocating."""
        if additional < 0:
            raise ValueError(f"Cannot reserve a negative amount: {additional}")
        self._index.reserve(additional)
        needed = self._length + additional
        if needed > len(self._elements):
            self._grow(needed)

    def _grow(self, min_capacity: int) -> None:
        old_capacity = len(self._elements)
        new_capacity = max(min_capacity, old_capacity * GROWTH_FACTOR, MIN_CAPACITY)
        logger.debug("Growing element buffer from %d to %d slots", old_capacity, new_capacity)
        self._elements = resized(self._elements, new_capacity)

    # Bulk access

    @property
    def elements(self) -> np.ndarray:
        """Read-only view of the packed values, in slot order."""
        view = self._elements[:self._length]
        view.flags.writeable = False
        return view

    def elements_mut(self) -> np.ndarray:
        """
        Writable view of the packed values, in slot order.

        Values may be overwritten in place. The view cannot change the buffer
        length, but reordering through it (sort, shuffle, roll...) silently
        detaches values from their identifiers and must not be done.
        The view stops tracking the store after the next insert, remove or clear.
        """
        return self._elements[:self._length]

    def drain(self) -> Iterator:
        """Empties the store and returns an iterator over the values it held."""
        values = self._elements[:self._length].tolist()
        self.clear()
        return iter(values)

    def __iter__(self) -> Iterator:
        return iter(self.elements)

    def ids(self) -> list[int]:
        """Live identifiers, in slot order."""
        return self._index.slot_ids(self._length)

    def items(self) -> Iterator[tuple[int, Any]]:
        return zip(self.ids(), self.elements)

    def verify(self) -> None:
        """Raises IndexCorruptionError if the index no longer matches the buffer."""
        self._index.verify(self._length)

    def copy(self) -> "PackedStore":
        """Shallow copy: new tables and buffer, same value objects."""
        clone = PackedStore(dtype=self._elements.dtype)
        clone._index = self._index.copy()
        clone._elements = self._elements.copy()
        clone._length = self._length
        return clone

    __copy__ = copy

    def __repr__(self) -> str:
        return f"PackedStore({self.elements.tolist()!r})"

