"""
Transaction export.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import Response

from luno.deps import CurrentUser, DBSession
from luno.logger import get_logger
from luno.services import export

logger = get_logger(__name__)

router = APIRouter(prefix="/api/export", tags=["export"])


@router.get("/transactions")
async def export_transactions(
    user: CurrentUser,
    db: DBSession,
    format: str = Query("csv", pattern="^(csv|json)$"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    """Download transactions as CSV, or return them as JSON."""
    rows = export.fetch_export_rows(db, user.id, start_date, end_date)
    logger.info("transactions_exported", user_id=user.id, format=format, count=len(rows))

    if format == "json":
        return export.to_json(rows)

    return Response(
        content=export.to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export.export_filename()}"'},
    )
