# Third-party imports
from fastapi import HTTPException, Query, Request, status
from pydantic import ValidationError

# Local application imports
from civicsync.schemas.reports import ReportFilter
from civicsync.sync.session import SyncSession


def get_sync_session(request: Request) -> SyncSession:
    """The application's shared sync session, started by the lifespan."""
    session: SyncSession | None = getattr(request.app.state, "sync_session", None)
    if session is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Report sync is not running")
    return session


def get_report_filter(
    status_filter: str = Query("all", alias="status"),
    category: str = Query("all"),
    date_range: str = Query("all"),
    created_from: str | None = Query(None),
    created_to: str | None = Query(None),
    order: str = Query("desc"),
) -> ReportFilter:
    """Build a ``ReportFilter`` from query parameters; invalid values are a 400."""
    try:
        return ReportFilter.model_validate(
            {
                "status": status_filter,
                "category": category,
                "date_range": date_range,
                "created_from": created_from,
                "created_to": created_to,
                "order": order,
            }
        )
    except ValidationError as e:
        messages = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="; ".join(messages)) from None
