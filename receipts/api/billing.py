import hmac

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from receipts.api.deps import get_db
from receipts.config import settings
from receipts.schemas.workspace import BillingPlanUpdate
from receipts.services.seats import seats

router = APIRouter(prefix="/billing", tags=["billing"])


def require_billing_key(x_billing_key: str | None = Header(default=None)) -> None:
    if not x_billing_key or not hmac.compare_digest(
        x_billing_key, settings.billing_api_key
    ):
        raise HTTPException(status_code=401, detail="Invalid billing key")


@router.post("/plan-updates", dependencies=[Depends(require_billing_key)])
def apply_plan_update(payload: BillingPlanUpdate, db: Session = Depends(get_db)):
    return seats.apply_billing_update(db, payload)
