"""
Database models package.

Only used by the Postgres report service; the sync layer works on the pydantic
``Report`` schema.
"""

# Local application imports
from civicsync.models.base import Base
from civicsync.models.reports import ReportRow

__all__ = [
    "Base",
    "ReportRow",
]
