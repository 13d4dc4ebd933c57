from Colony.IndexTable import TOMBSTONE, IndexCorruptionError, IndexTable
from Colony.PackedStore import PackedStore

__all__ = ["IndexTable", "IndexCorruptionError", "PackedStore", "TOMBSTONE"]
