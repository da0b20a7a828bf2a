from fastapi import APIRouter, Depends

from paywall.dependencies import get_coupon_service
from paywall.domains.coupons.service import CouponService
from paywall.schemas.codes import CouponValidateRequest

router = APIRouter(prefix="/coupon", tags=["coupon"])


@router.post("/validate")
async def validate_coupon(data: CouponValidateRequest, service: CouponService = Depends(get_coupon_service)):
    """Check a customer-entered code; matching ignores case."""
    coupon = await service.validate(data.code)
    return {"success": True, "message": "Coupon code is valid", "coupon": coupon.model_dump()}
