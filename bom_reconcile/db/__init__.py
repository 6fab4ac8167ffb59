"""Record store backends (abstract protocol, in-memory, PostgreSQL)."""
