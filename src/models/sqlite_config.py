from sqlalchemy import event
from sqlalchemy.engine import Engine


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite://")


def is_memory_url(url: str) -> bool:
    return is_sqlite_url(url) and (":memory:" in url or url.rstrip("/") == "sqlite:")


def sqlite_connect_args(url: str) -> dict:
    if not is_sqlite_url(url):
        return {}
    return {"check_same_thread": False, "timeout": 30}


def apply_sqlite_pragmas(connection, use_wal: bool = True) -> None:
    cursor = connection.cursor()
    if use_wal:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_sqlite_engine(engine: Engine, use_wal: bool = True) -> None:
    """Install pragmas and let SQLAlchemy own BEGIN so SAVEPOINTs work.

    pysqlite starts transactions lazily on its own, which silently breaks
    ``Session.begin_nested()``. Disabling the driver's handling and emitting
    BEGIN from the ``begin`` event restores nested transactions.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _):
        dbapi_connection.isolation_level = None
        apply_sqlite_pragmas(dbapi_connection, use_wal=use_wal)

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN")
