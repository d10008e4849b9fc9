# Third-party imports
from fastapi import APIRouter, Depends

# Local application imports
from civicsync.dependancies.common import get_report_filter, get_sync_session
from civicsync.schemas.common import BaseResponse, ListMeta
from civicsync.schemas.reports import Report, ReportAggregates, ReportCreate, ReportFilter, ReportPatch, StatusUpdate
from civicsync.sync.exceptions import UnknownReportError
from civicsync.sync.session import SyncSession

router = APIRouter(prefix="/reports", tags=["Reports"])


def _listing(session: SyncSession, reports: tuple[Report, ...]) -> BaseResponse[list[Report]]:
    return BaseResponse[list[Report]].success(
        data=list(reports),
        meta=ListMeta(total_items=len(reports), store_version=session.store.version),
    )


@router.get("/", response_model=BaseResponse[list[Report]])
async def list_reports(
    report_filter: ReportFilter = Depends(get_report_filter),
    session: SyncSession = Depends(get_sync_session),
):
    """List reports from the live store, newest first unless ``order=asc``"""
    return _listing(session, session.filtered(report_filter))


@router.get("/map", response_model=BaseResponse[list[Report]])
async def list_map_reports(
    report_filter: ReportFilter = Depends(get_report_filter),
    session: SyncSession = Depends(get_sync_session),
):
    """Reports that can be pinned on the staff map"""
    return _listing(session, session.map_reports(report_filter))


@router.get("/analytics", response_model=BaseResponse[ReportAggregates])
async def get_analytics(session: SyncSession = Depends(get_sync_session)):
    """Dashboard statistics over the whole collection"""
    return BaseResponse[ReportAggregates].success(data=session.aggregates())


@router.get("/{report_id}", response_model=BaseResponse[Report])
async def get_report(report_id: str, session: SyncSession = Depends(get_sync_session)):
    report = session.get(report_id)
    if report is None:
        raise UnknownReportError(report_id)
    return BaseResponse[Report].success(data=report)


@router.post("/", response_model=BaseResponse[Report])
async def submit_report(report_data: ReportCreate, session: SyncSession = Depends(get_sync_session)):
    """Submit a new report; the response is the record created remotely"""
    report = await session.submit_report(report_data)
    return BaseResponse[Report].success(data=report)


@router.patch("/{report_id}/status", response_model=BaseResponse[Report])
async def update_report_status(
    report_id: str,
    status_data: StatusUpdate,
    session: SyncSession = Depends(get_sync_session),
):
    """Move a report through the triage workflow"""
    report = await session.update_status(report_id, status_data.status)
    return BaseResponse[Report].success(data=report)


@router.patch("/{report_id}", response_model=BaseResponse[Report])
async def update_report(
    report_id: str,
    patch: ReportPatch,
    session: SyncSession = Depends(get_sync_session),
):
    report = await session.request_mutation(report_id, patch)
    return BaseResponse[Report].success(data=report)
