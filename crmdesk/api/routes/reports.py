"""Report generation, export and history endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from crmdesk.api.responses import success
from crmdesk.core.auth import RequestUserContext, get_current_user_context
from crmdesk.core.rate_limit import enforce_rate_limit
from crmdesk.db.dependencies import get_db_session
from crmdesk.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


class GenerateReportPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    format: str = Field(default="json", max_length=16)


def _service(db: Session) -> ReportService:
    return ReportService(db)


@router.get("/export-history")
def list_export_history(
    limit: int = Query(default=50),
    offset: int = Query(default=0),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    jobs, total = service.list_jobs(limit=limit, offset=offset)
    return success([service.serialize_job(job) for job in jobs], total=total)


@router.get("/export-history/{job_id}")
def get_export_job(
    job_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_job(service.get_job(job_id), include_payload=True))


@router.delete("/export-history/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_export_job(
    job_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_job(job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/export/{job_id}/{format_name}", dependencies=[Depends(enforce_rate_limit)])
def export_report(
    job_id: UUID,
    format_name: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    exported = _service(db).export(job_id=job_id, format_name=format_name)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@router.post("/{report_type}", dependencies=[Depends(enforce_rate_limit)])
def generate_report(
    report_type: str,
    payload: GenerateReportPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    job = service.generate(
        context=context,
        report_type=report_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        format_name=payload.format,
    )
    return success(
        {
            "jobId": str(job.id),
            "reportType": job.report_type,
            "format": job.format,
            "downloadUrl": service.download_url(job),
            "report": job.payload,
        }
    )
