from sqlalchemy import Engine, create_engine, event
from sqlmodel import SQLModel

from booksource.internal.env_settings import Settings
from booksource.internal.models import QuotaCounter
from booksource.util.log import logger


def create_db_engine(settings: Settings) -> Engine:
    """Build the engine backing the durable quota counters."""
    db = settings.db
    if db.use_postgres:
        engine = create_engine(
            f"postgresql://{db.postgres_user}:{db.postgres_password}@{db.postgres_host}:{db.postgres_port}/{db.postgres_db}?sslmode={db.postgres_ssl_mode}",
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_pre_ping=db.pool_pre_ping,
        )
    else:
        engine = create_engine(
            f"sqlite+pysqlite:///{settings.get_sqlite_path()}",
            connect_args={"check_same_thread": False},
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_pre_ping=db.pool_pre_ping,
        )

    logger.info(
        "Database connection pool configured",
        database_type="PostgreSQL" if db.use_postgres else "SQLite",
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_pre_ping=db.pool_pre_ping,
    )

    if settings.app.debug:
        @event.listens_for(engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            logger.debug("Database connection established")

    return engine


def init_db(engine: Engine) -> None:
    """Create the quota counter table if it does not exist yet."""
    SQLModel.metadata.create_all(engine, tables=[QuotaCounter.__table__])  # pyright: ignore[reportAttributeAccessIssue]

