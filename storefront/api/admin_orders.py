from fastapi import APIRouter, Depends, Query
from datetime import timedelta
from typing import Literal, Optional
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.core.auth import require_admin
from storefront.db.models import utcnow
from storefront.schemas import OrderPage, OrderStats, OrderStatusRead, OrderView, StatusUpdate, TrackingUpdateRequest
from storefront.services import orders, state_machine

router = APIRouter()

PERIODS = {"day": timedelta(days=1), "week": timedelta(days=7), "month": timedelta(days=30), "year": timedelta(days=365)}

@router.get("/orders", response_model=OrderPage)
def list_orders(db: Session = Depends(get_db), _=Depends(require_admin),
                status: Optional[str] = None, search: Optional[str] = None,
                limit: int = Query(default=10, ge=1, le=100), offset: int = Query(default=0, ge=0)):
    total, rows = orders.list_orders(db, status=status, search=search, limit=limit, offset=offset)
    return OrderPage(orders=[orders.order_view(o) for o in rows], total=total, limit=limit, offset=offset)

@router.get("/orders/stats", response_model=OrderStats)
def stats(period: Literal["day", "week", "month", "year"] = "week",
          db: Session = Depends(get_db), _=Depends(require_admin)):
    return orders.order_stats(db, since=utcnow() - PERIODS[period])

@router.get("/orders/{order_id}", response_model=OrderView)
def get_order(order_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    return orders.order_view(orders.get_order(db, order_id))

@router.get("/orders/{order_id}/status", response_model=OrderStatusRead)
def get_status(order_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    order = orders.get_order(db, order_id)
    return OrderStatusRead(
        id=order.id,
        status=order.status.value,
        allowed_transitions=sorted(s.value for s in state_machine.allowed_transitions(order.status)),
    )

@router.put("/orders/{order_id}/status", response_model=OrderView)
def update_status(order_id: int, payload: StatusUpdate, db: Session = Depends(get_db),
                  identity: dict = Depends(require_admin)):
    order = orders.update_status(
        db, order_id, payload.status, actor=identity.get("sub"),
        notes=payload.notes, reason=payload.reason, carrier=payload.carrier,
        tracking_number=payload.tracking_number, location=payload.location,
    )
    return orders.order_view(order)

@router.put("/orders/{order_id}/tracking", response_model=OrderView)
def update_tracking(order_id: int, payload: TrackingUpdateRequest, db: Session = Depends(get_db),
                    identity: dict = Depends(require_admin)):
    order = orders.add_tracking_update(
        db, order_id, payload.status, actor=identity.get("sub"),
        location=payload.location, description=payload.description,
        carrier=payload.carrier, tracking_number=payload.tracking_number,
    )
    return orders.order_view(order)
