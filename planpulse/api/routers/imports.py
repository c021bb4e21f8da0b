"""CSV import and export endpoints."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import Response
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from planpulse.api.dependencies import get_db_session, get_import_service
from planpulse.api.exceptions import ValidationError
from planpulse.api.models import CSVImportRequest, ImportResponse
from planpulse.common.dto.models import format_validation_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["imports"])


async def read_upload(request: Request) -> CSVImportRequest:
    """Accept either ``{"content": ..., "dry_run": ...}`` JSON or a raw CSV body."""
    body = (await request.body()).decode("utf-8-sig")
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return CSVImportRequest.model_validate(json.loads(body or "{}"))
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid JSON body: {exc.msg}") from exc
        except PydanticValidationError as exc:
            raise ValidationError(format_validation_error(exc)) from exc
    dry_run = request.query_params.get("dry_run", "").lower() in ("1", "true", "yes")
    return CSVImportRequest(content=body, dry_run=dry_run)


@router.post("/imports/{kind}", response_model=ImportResponse)
def import_csv(
    kind: str,
    upload: CSVImportRequest = Depends(read_upload),
    actor: Optional[str] = Header(None, alias="X-PlanPulse-Actor"),
    session: Session = Depends(get_db_session),
    service=Depends(get_import_service),
):
    """Import a CSV. Valid rows are stored, invalid rows are reported as ``Row N: ...``."""
    return service.import_csv(session, kind, upload.content, actor=actor, dry_run=upload.dry_run)


@router.get("/exports/{kind}")
def export_csv(
    kind: str,
    cycle_id: Optional[str] = Query(None, description="Allocations only: limit to one quarter"),
    session: Session = Depends(get_db_session),
    service=Depends(get_import_service),
):
    content = service.export_csv(session, kind, cycle_id=cycle_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind}.csv"'},
    )
