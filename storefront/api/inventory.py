from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from storefront.api.deps import get_db
from storefront.core.auth import admin_or_internal
from storefront.core.errors import StorefrontError
from storefront.schemas import InventoryItemsReq
from storefront.services import inventory

router = APIRouter()

@router.post("/inventory/restock")
def restock(req: InventoryItemsReq, db: Session = Depends(get_db),
            identity: dict = Depends(admin_or_internal)):
    levels = {}
    try:
        for it in req.items:
            levels[it.variant_id] = inventory.restock(db, it.variant_id, it.qty, actor=identity.get("sub", ""))
        db.commit()
    except StorefrontError:
        db.rollback()
        raise
    return {"status": "restocked", "quantities": levels}
