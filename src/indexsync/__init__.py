"""IndexSync — Search index schema synchronization and indexing execution."""

__version__ = "0.1.0"
