from typing import Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from watchshop import config

Base = declarative_base()


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _install_sqlite_locking(engine: Engine) -> None:
    """SQLite has no SELECT ... FOR UPDATE: every transaction starts with
    BEGIN IMMEDIATE so it owns the write lock from its first statement."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, record):
        # let SQLAlchemy emit BEGIN itself
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Engine + session factory, built once by the application entry point."""

    def __init__(self, url: Optional[str] = None, echo: bool = False):
        self.url = url or config.DATABASE_URL
        if _is_sqlite(self.url):
            self.engine = create_engine(
                self.url,
                echo=echo,
                connect_args={"check_same_thread": False, "timeout": config.CHECKOUT_TIMEOUT_SECONDS},
            )
            _install_sqlite_locking(self.engine)
        else:
            self.engine = create_engine(
                self.url,
                echo=echo,
                pool_pre_ping=True,
                pool_size=10,
                max_overflow=20,
            )
        # Session factory
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        # models must be imported before create_all()
        import watchshop.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        import watchshop.models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()


def apply_statement_timeout(db: Session, seconds: float) -> None:
    """Bound every statement of the current transaction (PostgreSQL only)."""
    if db.get_bind().dialect.name != "postgresql":
        return
    ms = max(1, int(seconds * 1000))
    db.execute(text(f"SET LOCAL statement_timeout = {ms}"))
    db.execute(text(f"SET LOCAL lock_timeout = {ms}"))


# Dependency for FastAPI
def get_db(request: Request):
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()
