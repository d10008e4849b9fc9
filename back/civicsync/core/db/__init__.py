# Local application imports
from civicsync.core.db.create_async_engine import async_engine
from civicsync.core.db.session_factory import AsyncSessionLocal

__all__ = [
    "AsyncSessionLocal",
    "async_engine",
]
