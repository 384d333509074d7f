"""
Reports API endpoints

- GET /reports?date=YYYY-MM-DD&deviceId=... - Daily labeling report as CSV
"""
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.services.report_service import generate_daily_report, render_report_csv

logger = logging.getLogger(__name__)

# Characters allowed verbatim in the attachment filename
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("")
def download_daily_report(
    date: Optional[str] = Query(None, description="Report day (YYYY-MM-DD)"),
    device_id: Optional[str] = Query(None, alias="deviceId", description="Device to report on"),
    db: Session = Depends(get_db)
):
    """
    Download one device's labeling counts for one day.

    **CSV Format**:
    ```csv
    Date,Device ID,Program Content Count,Commercial Break Count,...,Unlabeled Count,Total Events
    2025-03-05,dev-1,4,2,0,1,3,0,118,130
    ```

    **Status Codes:**
    - 200: CSV attachment
    - 400: Missing or malformed date or deviceId
    """
    report = generate_daily_report(db, date, device_id)
    device_part = _UNSAFE_FILENAME_CHARS.sub("_", report.device_id)
    filename = f"report_{report.date}_{device_part}.csv"
    return Response(
        content=render_report_csv(report),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
