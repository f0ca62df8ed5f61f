from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.core.auth import get_current_identity
from storefront.core.errors import ValidationError
from storefront.schemas import CancelRequest, CheckoutRequest, CheckoutResponse, OrderPage, OrderView
from storefront.services import orders
from storefront.services.orders import CartLine
from storefront.store.cart_store import get_cart, clear_cart

router = APIRouter()

@router.post("/orders/checkout", response_model=CheckoutResponse, status_code=201)
def checkout(payload: CheckoutRequest, identity: dict = Depends(get_current_identity), db: Session = Depends(get_db)):
    email = identity.get("sub")
    cart = get_cart(email)
    if not cart["items"]:
        raise ValidationError("Cart is empty")
    lines = [CartLine(int(it["variant_id"]), int(it["qty"])) for it in cart["items"]]
    order = orders.place_order(db, email, lines, payload, coupon_code=payload.coupon_code)
    clear_cart(email)
    return CheckoutResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status.value,
        sub_total_cents=order.sub_total_cents,
        discount_cents=order.discount_cents,
        total_cents=order.total_cents,
        currency=order.currency,
    )

@router.get("/orders", response_model=OrderPage)
def my_orders(identity: dict = Depends(get_current_identity), db: Session = Depends(get_db),
              limit: int = Query(default=10, ge=1, le=100), offset: int = Query(default=0, ge=0)):
    total, rows = orders.list_orders(db, user_email=identity.get("sub"), limit=limit, offset=offset)
    return OrderPage(orders=[orders.order_view(o) for o in rows], total=total, limit=limit, offset=offset)

@router.get("/orders/{order_id}", response_model=OrderView)
def get_order(order_id: int, identity: dict = Depends(get_current_identity), db: Session = Depends(get_db)):
    return orders.order_view(orders.get_order(db, order_id, owner_email=identity.get("sub")))

@router.post("/orders/{order_id}/cancel", response_model=OrderView)
def cancel_order(order_id: int, payload: CancelRequest, identity: dict = Depends(get_current_identity),
                 db: Session = Depends(get_db)):
    order = orders.cancel_order(db, order_id, actor=identity.get("sub"), reason=payload.reason)
    return orders.order_view(order)
