# Third-party imports
from sqlalchemy.ext.asyncio import create_async_engine

# Local application imports
from civicsync.settings import settings

# Asynchronous Engine
async_engine = create_async_engine(
    str(settings.SQLALCHEMY_ASYNC_DATABASE_URI),
    echo=settings.DEBUG_MODE,
    future=True,
    pool_pre_ping=True,  # the report service holds connections across idle periods
)
