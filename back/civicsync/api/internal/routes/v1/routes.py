# Third-party imports
from fastapi import APIRouter

# Local application imports
from civicsync.api.internal.routes.v1.reports import report_router

router = APIRouter()

# Include all internal v1 routers
router.include_router(report_router)
