"""HTTP API for ODP Core."""
