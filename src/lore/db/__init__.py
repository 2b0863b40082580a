"""lore database layer."""

from lore.db.connection import Database
from lore.db.migrations import MIGRATIONS, run_migrations
from lore.db.repository import Repository
from lore.db.schema import initialize
from lore.db.vectors import build_index, ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "build_index",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
