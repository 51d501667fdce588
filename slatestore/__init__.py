"""Options, configuration loading, block caches and compaction bookkeeping for an LSM-tree key-value store."""

__version__ = "0.1.0"