"""Discount code service implementation."""

import logging
import math
from typing import Any, Dict, List, Optional

from ...schemas.codes import CodeCreate, CodePage, CodeRead, CodeUpdate, CouponInfo, Pagination
from ...utils.errors import ConflictError, CouponInactiveError, InvalidArgumentError, NotFoundError
from ...utils.utils import parse_object_id
from .repository import CouponRepository

logger = logging.getLogger(__name__)

DISCOUNT_RANGE_MESSAGE = "Discount must be a number between 0 and 100"


def _valid_discount(discount: Optional[float]) -> bool:
    return discount is not None and not math.isnan(discount) and 0 <= discount <= 100


class CouponService:
    """Coupon validation and administrative code management."""

    def __init__(self, repository: CouponRepository):
        self.repository = repository
        self.logger = logging.getLogger(__name__)

    async def validate(self, code: Optional[str]) -> CouponInfo:
        """Check that a code can be redeemed.

        Read-only: usage fields on the record are neither checked nor touched.

        Args:
            code: Code as typed by the customer

        Returns:
            The discount the code grants

        Raises:
            InvalidArgumentError: If no code was given
            NotFoundError: If no code matches, ignoring case
            CouponInactiveError: If the code matches but is deactivated
        """
        if not code or not code.strip():
            raise InvalidArgumentError("Coupon code is required")

        coupon = await self.repository.find_by_code_insensitive(code.strip())
        if coupon is None:
            raise NotFoundError("Invalid or inactive coupon code")
        if not coupon.is_active:
            raise CouponInactiveError("Invalid or inactive coupon code")

        return CouponInfo(code=coupon.code, discount=coupon.discount or 0, description=coupon.description or "")

    async def create(self, data: CodeCreate) -> CodeRead:
        if not data.code or not data.code.strip():
            raise InvalidArgumentError("Code is required")
        if data.discount is not None and not _valid_discount(data.discount):
            raise InvalidArgumentError(DISCOUNT_RANGE_MESSAGE)

        code = data.code.strip()
        if await self.repository.code_taken(code):
            raise ConflictError("Code already exists")

        created = await self.repository.insert(self._prepare(data))
        self.logger.info(f"Created code {created.code} with {created.discount}% discount")
        return created

    async def bulk_create(self, items: List[CodeCreate]) -> List[CodeRead]:
        """Create many codes, all or nothing.

        Every invalid item is reported in one error rather than failing on the first.

        Raises:
            InvalidArgumentError: If the list is empty or any item is invalid
            ConflictError: If any code is already stored
        """
        if not items:
            raise InvalidArgumentError("Codes array is required and must not be empty")

        prepared: List[Dict[str, Any]] = []
        errors: List[str] = []
        seen = set()
        for index, item in enumerate(items):
            if not item.code or not item.code.strip():
                errors.append(f"Code at index {index} is missing the code field")
                continue
            if item.discount is not None and not _valid_discount(item.discount):
                errors.append(f"Code at index {index} has invalid discount (must be 0-100)")
                continue
            code = item.code.strip()
            if code in seen:
                errors.append(f'Duplicate code "{code}" at index {index}')
                continue
            seen.add(code)
            prepared.append(self._prepare(item))

        if errors:
            raise InvalidArgumentError("Validation errors", details={"errors": errors})

        existing = await self.repository.existing_codes([item["code"] for item in prepared])
        if existing:
            raise ConflictError("Some codes already exist", details={"existingCodes": existing})

        created = await self.repository.insert_many(prepared)
        self.logger.info(f"Created {len(created)} codes in bulk")
        return created

    async def list(
        self,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 100,
    ) -> CodePage:
        page = max(1, page)
        limit = max(1, limit)
        items, total = await self.repository.list(
            is_active=is_active, search=search, skip=(page - 1) * limit, limit=limit
        )
        return CodePage(
            items=items,
            pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
        )

    async def get(self, code_id: str) -> CodeRead:
        object_id = parse_object_id(code_id, "code ID")
        code = await self.repository.get(object_id)
        if code is None:
            raise NotFoundError("Code not found")
        return code

    async def get_by_code(self, code: str) -> CodeRead:
        if not code or not code.strip():
            raise InvalidArgumentError("Code parameter is required")
        found = await self.repository.find_by_code(code.strip())
        if found is None:
            raise NotFoundError("Code not found")
        return found

    async def update(self, code_id: str, data: CodeUpdate) -> CodeRead:
        object_id = parse_object_id(code_id, "code ID")

        changes: Dict[str, Any] = {}
        if data.code is not None:
            code = data.code.strip()
            if not code:
                raise InvalidArgumentError("Code must not be empty")
            if await self.repository.code_taken(code, exclude_id=object_id):
                raise ConflictError("Code already exists")
            changes["code"] = code
        if data.description is not None:
            changes["description"] = data.description
        if data.discount is not None:
            if not _valid_discount(data.discount):
                raise InvalidArgumentError(DISCOUNT_RANGE_MESSAGE)
            changes["discount"] = data.discount
        if data.is_active is not None:
            changes["is_active"] = data.is_active

        if not changes:
            return await self.get(code_id)

        updated = await self.repository.update(object_id, changes)
        if updated is None:
            raise NotFoundError("Code not found")
        self.logger.info(f"Updated code {code_id}: {sorted(changes)}")
        return updated

    async def delete(self, code_id: str) -> CodeRead:
        object_id = parse_object_id(code_id, "code ID")
        deleted = await self.repository.delete(object_id)
        if deleted is None:
            raise NotFoundError("Code not found")
        return deleted

    @staticmethod
    def _prepare(data: CodeCreate) -> Dict[str, Any]:
        return {
            "code": data.code.strip(),
            "description": data.description or "",
            "discount": data.discount if data.discount is not None else 0,
            "is_active": data.is_active if data.is_active is not None else True,
        }
