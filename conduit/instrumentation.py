from contextvars import ContextVar

from sqlalchemy import event

# ---------------------------------------------------------------------------
# Per-transaction context variable
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Register a ``before_cursor_execute`` event listener on *engine* that
    increments ``query_count_var`` for every SQL statement.

    The outermost transaction resets the counter when it begins and
    reports the total when it commits, so the figure covers the primary
    query plus every hydration round-trip of one repository call.

    Must be called once per engine (production engine in ``database.py``,
    test engine in ``conftest.py``).
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


def reset_query_count() -> None:
    query_count_var.set(0)


def current_query_count() -> int:
    return query_count_var.get()
