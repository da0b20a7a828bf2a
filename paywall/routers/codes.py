"""Administrative endpoints for discount codes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from paywall.dependencies import get_coupon_service
from paywall.domains.coupons.service import CouponService
from paywall.schemas.codes import CodeBulkCreate, CodeCreate, CodeRead, CodeUpdate
from paywall.security import verify_security_api_key

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/codes",
    tags=["codes"],
    dependencies=[Depends(verify_security_api_key)],
)


def _dump(code: CodeRead) -> dict:
    return code.model_dump(by_alias=True, mode="json")


@router.get("")
async def list_codes(
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=100, ge=1, le=1000),
    service: CouponService = Depends(get_coupon_service),
):
    """List codes newest first, optionally filtered by active flag and code substring."""
    result = await service.list(is_active=is_active, search=search, page=page, limit=limit)
    return {
        "message": "Codes retrieved successfully",
        "codes": [_dump(code) for code in result.items],
        "pagination": result.pagination.model_dump(),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_code(data: CodeCreate, service: CouponService = Depends(get_coupon_service)):
    created = await service.create(data)
    return {"message": "Code created successfully", "code": _dump(created)}


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def bulk_create_codes(data: CodeBulkCreate, service: CouponService = Depends(get_coupon_service)):
    created = await service.bulk_create(data.codes)
    return {
        "message": f"{len(created)} codes created successfully",
        "codes": [_dump(code) for code in created],
    }


@router.get("/code/{code}")
async def get_code_by_code(code: str, service: CouponService = Depends(get_coupon_service)):
    found = await service.get_by_code(code)
    return {"message": "Code retrieved successfully", "code": _dump(found)}


@router.get("/{code_id}")
async def get_code(code_id: str, service: CouponService = Depends(get_coupon_service)):
    found = await service.get(code_id)
    return {"message": "Code retrieved successfully", "code": _dump(found)}


@router.put("/{code_id}")
async def update_code(code_id: str, data: CodeUpdate, service: CouponService = Depends(get_coupon_service)):
    updated = await service.update(code_id, data)
    return {"message": "Code updated successfully", "code": _dump(updated)}


@router.delete("/{code_id}")
async def delete_code(code_id: str, service: CouponService = Depends(get_coupon_service)):
    deleted = await service.delete(code_id)
    return {"message": "Code deleted successfully", "code": _dump(deleted)}
