from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from storefront.api.deps import get_db
from storefront.db.models import utcnow
from storefront.schemas import CouponVerify, CouponVerifyResponse
from storefront.services import coupons

router = APIRouter()

@router.post("/coupons/verify", response_model=CouponVerifyResponse)
def verify_coupon(payload: CouponVerify, db: Session = Depends(get_db)):
    coupon, result = coupons.verify(db, payload.code, payload.cart_total_cents, utcnow())
    if not result.ok:
        raise result.error
    return CouponVerifyResponse(
        valid=True,
        code=coupon.code,
        discount_type=coupon.discount_type.value,
        discount_value=coupon.discount_value,
        discount_cents=result.discount_cents,
        final_cents=result.total_cents,
    )
