import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from config import settings
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(url: str, **kwargs):
    """Async engine for a PostgreSQL (asyncpg) or SQLite (aiosqlite) URL"""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_async_engine(url, echo=settings.DEBUG, future=True, **kwargs)


def make_session_maker(bind) -> async_sessionmaker:
    # Objects stay usable after commit; routers serialize them afterwards
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url_async)
async_session_maker = make_session_maker(engine)


async def get_db():
    """Request-scoped session; overridden in tests"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def _log_retry(retry_state):
    logger.warning(
        f"Database not reachable (attempt {retry_state.attempt_number}/12), "
        f"next try in 5s: {retry_state.outcome.exception()}"
    )


@retry(
    retry=retry_if_exception_type((ConnectionRefusedError, OSError)),
    stop=stop_after_attempt(12),
    wait=wait_fixed(5),
    reraise=True,
    before_sleep=_log_retry,
)
async def init_db(bind=None):
    """
    Create the schema once the database answers.

    The first connection is retried for up to a minute, which covers a
    database container or proxy that is still starting when the API boots.
    """
    bind = bind or engine
    logger.info("Connecting to database...")

    try:
        async with bind.connect() as conn:
            await conn.execute(text("SELECT 1"))

        # Registers every table on Base.metadata
        import models  # noqa: F401

        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Schema ready ({len(Base.metadata.tables)} tables)")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise
