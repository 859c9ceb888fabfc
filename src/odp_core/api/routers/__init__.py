"""API routers for ODP Core."""

from . import baselines, changes, documents, editions, requirements, taxonomy, waves

__all__ = ["baselines", "changes", "documents", "editions", "requirements", "taxonomy", "waves"]
