from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from receipts.db import SessionLocal
from receipts.models.account import Account
from receipts.services.common import coerce_uuid


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_account(
    x_account_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Account:
    """Load the account the upstream gateway authenticated."""
    if not x_account_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        account_id = coerce_uuid(x_account_id)
    except HTTPException:
        raise HTTPException(status_code=401, detail="Authentication required")
    account = db.get(Account, account_id)
    if not account or not account.is_active:
        raise HTTPException(status_code=401, detail="Authentication required")
    return account
