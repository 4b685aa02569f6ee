"""
Dialect-aware INSERT ... ON CONFLICT builders.

Both PostgreSQL and SQLite support ON CONFLICT with a RETURNING clause, which lets
contact and conversation resolution happen in a single statement keyed on a unique
constraint instead of a select-then-insert sequence.
"""
from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite


def dialect_insert(db: Session, model):
    """Return an `insert()` construct supporting `on_conflict_do_update` for the bound dialect"""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert not supported for dialect: {dialect}")
