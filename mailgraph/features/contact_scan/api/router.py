"""
Contact scan routes.

Start, poll and stop mailbox contact scans, and inspect or reset the
stored checkpoint. The Gmail refresh token comes from the session cookie;
scan outcomes are only reported through polling.
"""

from typing import Literal

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status

from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.google_session_service import GoogleOAuthError

from ..domain.models import JOB_STATUS_CANCELLED
from ..repository.progress_repository import ProgressStoreUnavailableError
from ..scanners.errors import ScanInProgressError
from ..services.scan_service import ContactScanService, contact_scan_service
from .schemas import (
    ResetProgressResponse,
    ScanJobResponse,
    ScanProgressResponse,
    StartScanRequest,
    StartScanResponse,
    StopScanResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/gmail/sync", tags=["gmail-sync"])


def get_scan_service() -> ContactScanService:
    return contact_scan_service


def require_refresh_token(gmail_refresh_token: str | None = Cookie(default=None)) -> str:
    if not gmail_refresh_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not_authenticated")
    return gmail_refresh_token


@router.post("/start", response_model=StartScanResponse)
async def start_scan(
    request: StartScanRequest,
    refresh_token: str = Depends(require_refresh_token),
    service: ContactScanService = Depends(get_scan_service),
):
    """Start a contact scan in the background."""
    try:
        job = await service.start_scan(
            refresh_token,
            method=request.method,
            max_messages=request.max_messages,
            preset=request.preset,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GoogleOAuthError as e:
        logger.warning("Scan start rejected, Gmail auth failed", error=str(e), error_code=e.error_code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Gmail authentication expired. Please reconnect your Gmail account.",
        )
    except Exception as e:
        logger.error("Error starting scan", method=request.method, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start scan",
        )

    label = "IMAP" if request.method == "imap" else "Gmail API"
    return StartScanResponse(
        method=request.method,
        job_id=job["job_id"],
        message=f"{label} scan started with progress tracking",
    )


@router.get("/status/{job_id}", response_model=ScanJobResponse)
async def get_scan_status(job_id: str, service: ContactScanService = Depends(get_scan_service)):
    """Poll a scan job."""
    job = service.get_status(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return ScanJobResponse(**job)


@router.post("/stop/{job_id}", response_model=StopScanResponse)
async def stop_scan(job_id: str, service: ContactScanService = Depends(get_scan_service)):
    """Request cancellation; takes effect at the next batch boundary."""
    job = service.stop_scan(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if job["status"] == JOB_STATUS_CANCELLED:
        message = "Scan cancelled. Data collected so far has been saved."
    else:
        message = f"Scan already {job['status']}, nothing to stop."
    return StopScanResponse(job_id=job_id, status=job["status"], message=message)


def _auth_expired(e: GoogleOAuthError) -> HTTPException:
    logger.warning("Gmail auth failed", error=str(e), error_code=e.error_code)
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Gmail authentication expired. Please reconnect your Gmail account.",
    )


@router.get("/progress", response_model=ScanProgressResponse)
async def get_scan_progress(
    method: Literal["api", "imap"] = Query(default="imap"),
    refresh_token: str = Depends(require_refresh_token),
    service: ContactScanService = Depends(get_scan_service),
):
    """Stored checkpoint for the signed-in account."""
    try:
        progress = await service.get_progress(refresh_token, method=method)
    except GoogleOAuthError as e:
        raise _auth_expired(e)
    return ScanProgressResponse(**progress)


@router.delete("/progress", response_model=ResetProgressResponse)
async def reset_scan_progress(
    method: Literal["api", "imap"] = Query(default="imap"),
    refresh_token: str = Depends(require_refresh_token),
    service: ContactScanService = Depends(get_scan_service),
):
    """Forget the checkpoint so the next scan starts from the beginning."""
    try:
        result = await service.reset_progress(refresh_token, method=method)
    except GoogleOAuthError as e:
        raise _auth_expired(e)
    except ScanInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ProgressStoreUnavailableError as e:
        logger.error("Progress reset failed, store unavailable", method=method, error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return ResetProgressResponse(method=method, reset=result["reset"], message=result["message"])
