"""Query execution package."""

from register_engine.queries.register import (
    QueryExecutionError,
    RegisterQueryExecutor,
    summarize,
)

__all__ = ["QueryExecutionError", "RegisterQueryExecutor", "summarize"]
