from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from salesdesk.core.auth import get_current_user
from salesdesk.core.context import CallerContext
from salesdesk.core.database import get_db
from salesdesk.core.schemas import DataResponse
from salesdesk.reporting.schemas import DashboardSummary
from salesdesk.reporting.service import dashboard_service


router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=DataResponse[DashboardSummary])
def dashboard_summary(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_user),
) -> DataResponse[DashboardSummary]:
    return DataResponse[DashboardSummary](data=dashboard_service.summary(db, caller))
