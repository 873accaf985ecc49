from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from tooltrack.config import get_settings

settings = get_settings()

def build_engine_url(raw_url: str):
    """Parse DATABASE_URL into an engine URL and connect_args.

    Heroku/Render style ``postgres://`` and plain ``postgresql://`` URLs get the
    asyncpg driver. asyncpg has no ``sslmode`` parameter, so ``sslmode=require``
    becomes ``connect_args={"ssl": "require"}``. Other URLs (sqlite) pass through.
    """
    url: URL = make_url(raw_url)
    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername="postgresql+asyncpg")

    connect_args = {}
    if url.drivername.startswith("postgresql") and "sslmode" in url.query:
        sslmode = url.query["sslmode"]
        url = url.difference_update_query(["sslmode"])
        if sslmode == "require":
            connect_args["ssl"] = "require"

    return url, connect_args

database_url, connect_args = build_engine_url(settings.DATABASE_URL)

engine = create_async_engine(database_url, echo=False, connect_args=connect_args)

AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()

async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

def get_session_factory():
    """Sessionmaker for reads that run on their own connection, side by side."""
    return AsyncSessionLocal

async def init_models(bind=None):
    # Register every table on Base.metadata before create_all
    from tooltrack.models import tenant, user, tool, checkout, message  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
