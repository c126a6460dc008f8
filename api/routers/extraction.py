# WORKFLOW: Extraction endpoint for tariff documents.
# Used by: Document ingestion clients, integration testing
# Endpoints:
# 1. /extract - Document text or page images -> reconciled tariff records + quality report
#
# Request flow: HTTP POST -> Request validation -> Pipeline runner -> Optional storage -> Response
# A fatally aborted run (credentials rejected upstream) is returned as 502 with its partial report.

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
import logging

from db.session import get_db
from api.schemas.request import ExtractionRequest
from api.schemas.response import ExtractionResponse, PersistSummary
from etl.load_records import record_run, upsert_final_records
from pipeline.runner import run_pipeline
from services.extraction_client import create_extraction_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["extraction"])


def get_extraction_client():
    """Dependency providing the extraction client."""
    return create_extraction_client()


@router.post("/extract", response_model=ExtractionResponse)
async def extract_tariff_codes(
    request: ExtractionRequest,
    db: Session = Depends(get_db),
    client=Depends(get_extraction_client),
):
    """
    Extract and reconcile tariff codes from one document.

    Unit-level failures never fail the request; they are listed in errors
    and reflected in the quality report.
    """
    try:
        pipeline_request = request.to_pipeline_request()
    except (ValidationError, ValueError) as e:
        logger.error(f"Invalid extraction request: {e}")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    logger.info(
        f"Extraction request: {request.filename}, "
        f"{'pages=' + str(len(request.page_images)) if request.page_images is not None else 'text'}"
    )
    result = await run_pipeline(pipeline_request, client=client)

    if result.fatal:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "errors": result.errors,
                "quality_report": result.quality_report.model_dump(mode="json"),
            },
        )

    persisted = None
    if request.persist:
        try:
            inserted, updated = upsert_final_records(result.final_records, db, request.filename)
            record_run(result.quality_report, db, request.filename)
            persisted = PersistSummary(inserted=inserted, updated=updated)
        except Exception as e:
            logger.error(f"Persisting records for {request.filename} failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to store extracted records: {str(e)}",
            )

    return ExtractionResponse.from_result(result, request.filename, persisted)
