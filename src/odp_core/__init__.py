"""ODP Core - versioned operational requirements, changes, baselines and editions."""

__version__ = "1.0.0"
