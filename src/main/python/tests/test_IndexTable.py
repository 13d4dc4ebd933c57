import copy
import unittest

from Colony.IndexTable import TOMBSTONE, IndexCorruptionError, IndexTable


class TestIndexTable(unittest.TestCase):

    def setUp(self):
        # Fresh table for each test
        self.table = IndexTable()

    def test_fresh_ids_are_sequential(self):
        ids = [self.table.insert(slot) for slot in range(4)]

        self.assertEqual(ids, [0, 1, 2, 3])
        for slot, item_id in enumerate(ids):
            self.assertEqual(self.table.to_slot(item_id), slot)
            self.assertEqual(self.table.to_id(slot), item_id)
        self.assertEqual(self.table.issued, 4)
        self.table.verify(4)

    def test_missing_ids_resolve_to_none(self):
        self.table.insert(0)

        self.assertIsNone(self.table.to_slot(1))
        self.assertIsNone(self.table.to_slot(1337))
        # Negative ids must not wrap around to the end of the table
        self.assertIsNone(self.table.to_slot(-1))

    def test_remove_moves_last_id_into_hole(self):
        """
        id_to_slot: [0, 1, 2, 3] -> remove id 1 -> id 3 now lives in slot 1
        """
        for slot in range(4):
            self.table.insert(slot)

        vacated = self.table.remove(1, last_slot=3)

        self.assertEqual(vacated, 1)
        self.assertIsNone(self.table.to_slot(1))
        self.assertEqual(self.table.to_slot(3), 1)
        self.assertEqual(self.table.to_id(1), 3)
        self.assertEqual(self.table.to_slot(0), 0)
        self.assertEqual(self.table.to_slot(2), 2)
        self.table.verify(3)

    def test_remove_last_slot_stays_tombstoned(self):
        self.table.insert(0)
        self.table.insert(1)

        self.assertEqual(self.table.remove(1, last_slot=1), 1)

        self.assertIsNone(self.table.to_slot(1))
        self.assertEqual(self.table.to_slot(0), 0)
        self.table.verify(1)

    def test_remove_is_idempotent(self):
        self.table.insert(0)
        self.table.insert(1)

        self.table.remove(1, last_slot=1)
        self.assertIsNone(self.table.remove(1, last_slot=0))
        self.assertIsNone(self.table.remove(99, last_slot=0))

        self.assertEqual(self.table.live_count(), 1)
        self.table.verify(1)

    def test_freed_ids_are_reused_lifo(self):
        for slot in range(3):
            self.table.insert(slot)
        self.table.remove(0, last_slot=2)
        self.table.remove(2, last_slot=1)

        # One live id remains -> next slot is 1, and 2 was freed last
        self.assertEqual(self.table.insert(1), 2)
        self.assertEqual(self.table.insert(2), 0)
        self.assertEqual(self.table.issued, 3)
        self.table.verify(3)

    def test_growth_keeps_mappings(self):
        table = IndexTable(capacity=2)
        ids = [table.insert(slot) for slot in range(100)]

        self.assertGreaterEqual(table.capacity, 100)
        for slot, item_id in enumerate(ids):
            self.assertEqual(table.to_slot(item_id), slot)
        # Entries past issued are tombstones, not stale garbage
        self.assertIsNone(table.to_slot(100))
        table.verify(100)

    def test_reserve(self):
        self.table.reserve(50)
        self.assertGreaterEqual(self.table.capacity, 50)
        self.assertEqual(self.table.issued, 0)

        with self.assertRaises(ValueError):
            self.table.reserve(-1)
        with self.assertRaises(ValueError):
            IndexTable(capacity=-1)

    def test_clear_restarts_ids(self):
        for slot in range(3):
            self.table.insert(slot)
        self.table.remove(1, last_slot=2)

        self.table.clear()
        self.table.clear()

        self.assertEqual(self.table.issued, 0)
        self.assertEqual(self.table.live_count(), 0)
        for item_id in range(3):
            self.assertIsNone(self.table.to_slot(item_id))
        self.assertEqual(self.table.insert(0), 0)
        self.table.verify(1)

    @unittest.skipUnless(__debug__, "assertions are stripped under -O")
    def test_unchecked_lookup_asserts_on_dead_ids(self):
        self.table.insert(0)
        self.table.insert(1)
        self.table.remove(0, last_slot=1)

        self.assertEqual(self.table.to_slot_unchecked(1), 0)
        with self.assertRaises(AssertionError):
            self.table.to_slot_unchecked(0)
        with self.assertRaises(AssertionError):
            self.table.to_slot_unchecked(5)
        with self.assertRaises(AssertionError):
            self.table.to_slot_unchecked(-1)

    def test_verify_detects_corruption(self):
        for slot in range(3):
            self.table.insert(slot)

        with self.assertRaises(IndexCorruptionError):
            self.table.verify(2)

        self.table._slot_to_id[0] = 1
        with self.assertRaises(IndexCorruptionError):
            self.table.verify(3)

    def test_verify_detects_mapped_freed_id(self):
        self.table.insert(0)
        self.table.insert(1)
        self.table.remove(0, last_slot=1)

        self.table._id_to_slot[0] = 0
        with self.assertRaises(IndexCorruptionError):
            self.table.verify(1)

    def test_copy_is_independent(self):
        self.table.insert(0)
        clone = copy.copy(self.table)

        clone.insert(1)
        clone.remove(0, last_slot=1)

        self.assertEqual(self.table.to_slot(0), 0)
        self.assertEqual(self.table.issued, 1)
        self.assertIsNone(clone.to_slot(0))
        self.table.verify(1)
        clone.verify(1)

    def test_tombstone_cannot_be_a_slot(self):
        self.assertGreater(TOMBSTONE, 2 ** 62)
        self.assertIn("issued=0", repr(self.table))


if __name__ == "__main__":
    unittest.main()
