"""
Internal DB subpackage for the chart index.

Splits the store into models, schema/migrations and query groups while keeping
`IndexDb` as the single public interface the rest of the codebase imports.
External code should import `IndexDb` from `bmsindex.core.index_db`.
"""

from __future__ import annotations

# Models / DTOs
from .models import PatternRow, SongRow, UpsertPattern

# Schema / migrations
from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    # models
    "PatternRow",
    "SongRow",
    "UpsertPattern",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
