"""
Pydantic schemas package.

This package contains the report record, patch and filter schemas shared by
the sync core, the remote adapters and the HTTP view surface.
"""

# Local application imports
from civicsync.schemas.common import BaseResponse
from civicsync.schemas.reports import Report, ReportAggregates, ReportCreate, ReportFilter, ReportPatch

__all__ = [
    "BaseResponse",
    "Report",
    "ReportAggregates",
    "ReportCreate",
    "ReportFilter",
    "ReportPatch",
]
