from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine

from medclose.config import settings


def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
    # let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave under pysqlite
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
    finally:
        cursor.close()


def _begin_sqlite(connection: Connection) -> None:
    connection.exec_driver_sql("BEGIN")


def get_engine(database_url: str | None = None, echo: bool | None = None) -> Engine:
    url = database_url or settings.database_url
    engine = create_engine(
        url,
        echo=settings.echo_sql if echo is None else echo,
        future=True,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
        event.listen(engine, "begin", _begin_sqlite)
    return engine
