from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.core.auth import get_current_identity
from storefront.core.errors import NotFound
from storefront.db.models import ProductVariant
from storefront.schemas import CartItemAdd, CartItemUpdate, CartRead
from storefront.services import pricing
from storefront.store.cart_store import get_cart, get_item, put_item, delete_item, clear_cart

router = APIRouter()

def _purchasable_variant(db: Session, variant_id: int) -> ProductVariant:
    variant = db.get(ProductVariant, variant_id)
    if not variant or not variant.is_active or not variant.product.is_active:
        raise NotFound("Product variant", variant_id)
    return variant

def _check_qty(variant: ProductVariant, qty: int):
    result = pricing.line_subtotal(variant, qty)
    if not result.ok:
        raise result.error

@router.get("/cart", response_model=CartRead)
def get_my_cart(identity: dict = Depends(get_current_identity)):
    return get_cart(identity.get("sub"))

@router.post("/cart/items", response_model=CartRead, status_code=201)
def add_item(payload: CartItemAdd, identity: dict = Depends(get_current_identity), db: Session = Depends(get_db)):
    email = identity.get("sub")
    variant = _purchasable_variant(db, payload.variant_id)
    existing = get_item(email, payload.variant_id)
    qty = payload.qty + (existing["qty"] if existing else 0)
    _check_qty(variant, qty)
    # price shown in the cart; checkout re-prices from the variant
    put_item(email, {
        "variant_id": variant.id,
        "product_id": variant.product_id,
        "qty": qty,
        "unit_price_cents": variant.effective_price_cents,
        "title": variant.product.name,
    })
    return get_cart(email)

@router.patch("/cart/items/{variant_id}", response_model=CartRead)
def update_item(variant_id: int, payload: CartItemUpdate, identity: dict = Depends(get_current_identity),
                db: Session = Depends(get_db)):
    email = identity.get("sub")
    if payload.qty == 0:
        delete_item(email, variant_id)
        return get_cart(email)
    existing = get_item(email, variant_id)
    if not existing:
        raise NotFound("Cart item", variant_id)
    _check_qty(_purchasable_variant(db, variant_id), payload.qty)
    existing["qty"] = payload.qty
    put_item(email, existing)
    return get_cart(email)

@router.delete("/cart/items/{variant_id}", response_model=CartRead)
def remove_item(variant_id: int, identity: dict = Depends(get_current_identity)):
    email = identity.get("sub")
    delete_item(email, variant_id)
    return get_cart(email)

@router.post("/cart/clear", response_model=CartRead)
def clear(identity: dict = Depends(get_current_identity)):
    email = identity.get("sub")
    clear_cart(email)
    return get_cart(email)
