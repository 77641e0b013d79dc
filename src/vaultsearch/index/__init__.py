"""Vector store, synchronization and query services."""
