import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

# Both tables are int64; the largest value is reserved as the tombstone so it
# can never collide with a real slot.
SLOT_DTYPE = np.int64
TOMBSTONE = int(np.iinfo(SLOT_DTYPE).max)

MIN_CAPACITY = 8
GROWTH_FACTOR = 2


class IndexCorruptionError(Exception):
    """Raised by verify() when the identifier and slot tables disagree."""
    pass


def resized(array: np.ndarray, capacity: int) -> np.ndarray:
    """
    Returns a copy of `array` with room for `capacity` entries.
    Entries past the old length are uninitialised (None for object arrays).
    """
    grown = np.empty(capacity, dtype=array.dtype)
    grown[:len(array)] = array
    return grown


class IndexTable:
    """
    Identifier <-> Slot mapping for a packed buffer owned by someone else.

    The owner says which slot a new element will occupy (always its current
    length) and which slot is currently last; the table never stores values
    and never tracks the buffer length itself. Retired identifiers go on a
    LIFO free list and are handed out again before fresh ones.

    Lookup is `id_to_slot[id]`; removal moves the last slot's identifier into
    the vacated slot so the owner can swap-remove its buffer in step.
    """

    def __init__(self, capacity: int = 0):
        if capacity < 0:
            raise ValueError(f"Capacity cannot be negative: {capacity}")
        # Identifier -> Slot (TOMBSTONE once removed)
        self._id_to_slot = np.full(capacity, TOMBSTONE, dtype=SLOT_DTYPE)
        # Slot -> Identifier
        self._slot_to_id = np.full(capacity, TOMBSTONE, dtype=SLOT_DTYPE)
        # Logical length of both tables
        self._issued = 0
        # Retired identifiers, reused last-in first-out
        self._freed: list[int] = []

    @property
    def capacity(self) -> int:
        return len(self._id_to_slot)

    @property
    def issued(self) -> int:
        """Number of identifiers handed out since construction or the last clear()."""
        return self._issued

    def live_count(self) -> int:
        return self._issued - len(self._freed)

    def insert(self, slot: int) -> int:
        """
        Issues an identifier for the element about to occupy `slot`.
        `slot` must be the owner's current buffer length.
        """
        if self._freed:
            item_id = self._freed.pop()
            self._id_to_slot[item_id] = slot
            self._slot_to_id[slot] = item_id
            return item_id

        item_id = self._issued
        if item_id == self.capacity:
            self._grow(item_id + 1)
        # With an empty free list every issued id is live, so slot == item_id.
        self._id_to_slot[item_id] = slot
        self._slot_to_id[slot] = item_id
        self._issued += 1
        return item_id

    def to_slot(self, item_id: int) -> Optional[int]:
        """
        Slot currently holding `item_id`, or None if it was never issued
        or has been removed.
        """
        # Negative ids would wrap around in numpy indexing.
        if item_id < 0 or item_id >= self._issued:
            return None
        slot = int(self._id_to_slot[item_id])
        if slot == TOMBSTONE:
            return None
        return slot

    def to_slot_unchecked(self, item_id: int) -> int:
        """
        Fast path for callers that already know `item_id` is live.

        Passing a removed or never-issued identifier is a contract violation,
        not a recoverable error. It is caught by assertions in normal runs;
        under `python -O` the result is TOMBSTONE or a meaningless slot.
        """
        assert 0 <= item_id < self._issued, f"Identifier was never issued: {item_id}"
        slot = int(self._id_to_slot[item_id])
        assert slot != TOMBSTONE, f"Identifier has been removed: {item_id}"
        return slot

    def to_id(self, slot: int) -> int:
        """Identifier stored at an occupied `slot`. Unchecked."""
        return int(self._slot_to_id[slot])

    def slot_ids(self, length: int) -> list[int]:
        """Identifiers of slots 0..length, in slot order."""
        return self._slot_to_id[:length].tolist()

    # Removal is where packed structures get you.
    #
    #   id_to_slot: [2, 0, 1, 3]    elements: [A, B, C, D]
    #   remove id 2 -> slot 1, last slot 3 holds id 3
    #   id_to_slot: [2, 0, T, 1]    elements: [A, D, C]
    def remove(self, target_id: int, last_slot: int) -> Optional[int]:
        """
        Retires `target_id` and moves the identifier in `last_slot` into the
        slot it vacates. Returns that slot so the owner can swap-remove its
        buffer, or None (and changes nothing) if `target_id` is not live.
        """
        target_slot = self.to_slot(target_id)
        if target_slot is None:
            return None
        last_id = int(self._slot_to_id[last_slot])

        self._id_to_slot[last_id] = target_slot
        self._slot_to_id[target_slot] = last_id
        # After the swap, so removing the tail element stays tombstoned.
        self._id_to_slot[target_id] = TOMBSTONE
        self._freed.append(int(target_id))
        return target_slot

    def reserve(self, additional: int) -> None:
        """Makes room for `additional` more identifiers without reallocating."""
        if additional < 0:
            raise ValueError(f"Cannot reserve a negative amount: {additional}")
        needed = self._issued + additional
        if needed > self.capacity:
            self._grow(needed)

    def clear(self) -> None:
        """
        Forgets every identifier and the free list. Identifiers restart at 0;
        allocated capacity is kept.
        """
        self._id_to_slot[:self._issued] = TOMBSTONE
        self._slot_to_id[:self._issued] = TOMBSTONE
        self._issued = 0
        self._freed.clear()

    def _grow(self, min_capacity: int) -> None:
        old_capacity = self.capacity
        new_capacity = max(min_capacity, old_capacity * GROWTH_FACTOR, MIN_CAPACITY)
        logger.debug("Growing index table from %d to %d entries", old_capacity, new_capacity)
        self._id_to_slot = resized(self._id_to_slot, new_capacity)
        self._slot_to_id = resized(self._slot_to_id, new_capacity)
        self._id_to_slot[old_capacity:] = TOMBSTONE
        self._slot_to_id[old_capacity:] = TOMBSTONE

    def verify(self, length: int) -> None:
        """
        Checks both tables against an owner buffer holding `length` elements.

        Every occupied slot must name a distinct live identifier that points
        back at it, and every freed identifier must be tombstoned exactly once.
        Raises IndexCorruptionError on the first mismatch.
        """
        if length != self.live_count():
            raise IndexCorruptionError(
                f"{length} occupied slots but {self.live_count()} live identifiers")

        freed = set(self._freed)
        if len(freed) != len(self._freed):
            raise IndexCorruptionError(f"Free list holds duplicates: {self._freed}")

        for item_id in freed:
            if not 0 <= item_id < self._issued:
                raise IndexCorruptionError(f"Freed identifier was never issued: {item_id}")
            if self._id_to_slot[item_id] != TOMBSTONE:
                raise IndexCorruptionError(f"Freed identifier is still mapped: {item_id}")

        for slot in range(length):
            item_id = int(self._slot_to_id[slot])
            if not 0 <= item_id < self._issued:
                raise IndexCorruptionError(f"Slot {slot} holds unknown identifier {item_id}")
            if item_id in freed:
                raise IndexCorruptionError(f"Slot {slot} holds freed identifier {item_id}")
            if self._id_to_slot[item_id] != slot:
                raise IndexCorruptionError(
                    f"Identifier {item_id} maps to slot {int(self._id_to_slot[item_id])}, not {slot}")

    def copy(self) -> "IndexTable":
        clone = IndexTable()
        clone._id_to_slot = self._id_to_slot.copy()
        clone._slot_to_id = self._slot_to_id.copy()
        clone._issued = self._issued
        clone._freed = list(self._freed)
        return clone

    __copy__ = copy

    def __repr__(self) -> str:
        return (f"IndexTable(issued={self._issued}, live={self.live_count()}, "
                f"freed={self._freed})")
