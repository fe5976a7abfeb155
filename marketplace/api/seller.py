"""Seller dashboard entry point, gated to sellers and admins."""

from fastapi import APIRouter, Depends

from marketplace.api.deps import require_seller
from marketplace.sessions.models import SessionRecord

router = APIRouter()


@router.get("/dashboard")
def seller_dashboard(record: SessionRecord = Depends(require_seller)):
    # Identity comes from the admitted session, never from request input
    return {"user_id": record.user_id, "role": record.role.value, "email": record.email}
