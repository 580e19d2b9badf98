from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from config import settings
from models import get_db
from models.schemas import (
    ReconciliationRequest,
    ReconciliationResponse,
    RecordResultResponse,
    RunStatsResponse,
)
from services.catalog_store import SqlCatalogStore
from services.errors import SourceError
from services.reconciliation import ReconciliationRun

router = APIRouter()


@router.post("/runs", response_model=ReconciliationResponse)
async def run_reconciliation(
    request: ReconciliationRequest,
    db: Session = Depends(get_db),
) -> ReconciliationResponse:
    user_id = request.user_id if request.user_id is not None else settings.default_user_id
    run = ReconciliationRun(SqlCatalogStore(db), user_id=user_id, dry_run=request.dry_run)

    try:
        stats = run.run(request.records)
    except SourceError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    return ReconciliationResponse(
        status=run.state.value,
        user_id=user_id,
        dry_run=request.dry_run,
        stats=RunStatsResponse(**stats.as_dict()),
        results=[
            RecordResultResponse(
                index=result.index,
                title=result.title,
                status=result.status.value,
                product_id=result.product_id,
                phase=result.phase,
                error=result.error,
            )
            for result in run.results
        ],
    )
