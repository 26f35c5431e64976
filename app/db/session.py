# File: /app/db/session.py | Version: 2.0 | Title: SQLAlchemy Session using Central Settings (transactional SQLite DDL)
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def enable_sqlite_transactional_ddl(engine: Engine) -> None:
    """
    pysqlite commits implicitly before DDL statements. Take over BEGIN so that
    CREATE/ALTER/DROP TABLE run inside the session transaction and roll back with it.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if is_sqlite_url(url) else {}
    eng = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if is_sqlite_url(url):
        enable_sqlite_transactional_ddl(eng)
    return eng


engine = make_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
