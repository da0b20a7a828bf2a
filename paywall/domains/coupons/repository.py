"""Repository for discount codes."""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from beanie import PydanticObjectId
from pymongo.errors import BulkWriteError, DuplicateKeyError

from ...schemas.codes import CodeDocument, CodeRead
from ...utils.errors import ConflictError
from ...utils.utils import utcnow

logger = logging.getLogger(__name__)

DUPLICATE_KEY = 11000


class CouponRepository:
    """Repository for discount code data access."""

    def __init__(self):
        """Initialize the repository."""
        self.logger = logging.getLogger(__name__)

    async def find_by_code_insensitive(self, code: str) -> Optional[CodeRead]:
        """Find a code ignoring case.

        Codes differing only in case can coexist, so an active one wins over
        an inactive one.

        Args:
            code: Code as typed by the customer, already trimmed

        Returns:
            The matching code or None
        """
        docs = (
            await CodeDocument.find({"code": {"$regex": f"^{re.escape(code)}$", "$options": "i"}})
            .sort("-is_active")
            .limit(1)
            .to_list()
        )
        return CodeRead.from_document(docs[0]) if docs else None

    async def find_by_code(self, code: str) -> Optional[CodeRead]:
        doc = await CodeDocument.find_one({"code": code})
        return CodeRead.from_document(doc) if doc else None

    async def get(self, code_id: PydanticObjectId) -> Optional[CodeRead]:
        doc = await CodeDocument.get(code_id)
        return CodeRead.from_document(doc) if doc else None

    async def list(
        self,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[CodeRead], int]:
        """List codes newest first.

        Args:
            is_active: Filter by active flag
            search: Case-insensitive substring of the code
            skip: Number of codes to skip
            limit: Maximum number of codes to return

        Returns:
            Tuple of (codes, total matching)
        """
        query: Dict[str, Any] = {}
        if is_active is not None:
            query["is_active"] = is_active
        if search:
            query["code"] = {"$regex": re.escape(search), "$options": "i"}

        total = await CodeDocument.find(query).count()
        docs = await CodeDocument.find(query).sort("-created_at").skip(skip).limit(limit).to_list()
        return [CodeRead.from_document(doc) for doc in docs], total

    async def code_taken(self, code: str, exclude_id: Optional[PydanticObjectId] = None) -> bool:
        query: Dict[str, Any] = {"code": code}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return await CodeDocument.find_one(query) is not None

    async def existing_codes(self, codes: List[str]) -> List[str]:
        docs = await CodeDocument.find({"code": {"$in": codes}}).to_list()
        return [doc.code for doc in docs]

    async def insert(self, data: Dict[str, Any]) -> CodeRead:
        doc = CodeDocument(**data)
        try:
            await doc.insert()
        except DuplicateKeyError:
            raise ConflictError("Code already exists")
        return CodeRead.from_document(doc)

    async def insert_many(self, items: List[Dict[str, Any]]) -> List[CodeRead]:
        """Insert a batch of codes, all or none.

        Ids are assigned up front so that a batch cut short by a concurrent
        insert of the same code can be removed again.

        Raises:
            ConflictError: If any code already exists
        """
        ids = [PydanticObjectId() for _ in items]
        docs = [CodeDocument(id=doc_id, **item) for doc_id, item in zip(ids, items)]
        try:
            await CodeDocument.insert_many(docs)
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            await CodeDocument.find({"_id": {"$in": ids}}).delete()
            if any(err.get("code") == DUPLICATE_KEY for err in write_errors):
                self.logger.warning(f"Bulk insert of {len(docs)} codes hit an existing code, rolled back")
                raise ConflictError("Some codes already exist")
            raise
        created = await CodeDocument.find({"_id": {"$in": ids}}).sort("-created_at").to_list()
        return [CodeRead.from_document(doc) for doc in created]

    async def update(self, code_id: PydanticObjectId, data: Dict[str, Any]) -> Optional[CodeRead]:
        doc = await CodeDocument.get(code_id)
        if not doc:
            return None
        try:
            await doc.update({"$set": {**data, "updated_at": utcnow()}})
        except DuplicateKeyError:
            raise ConflictError("Code already exists")
        await doc.reload()
        return CodeRead.from_document(doc)

    async def delete(self, code_id: PydanticObjectId) -> Optional[CodeRead]:
        doc = await CodeDocument.get(code_id)
        if not doc:
            return None
        await doc.delete()
        self.logger.info(f"Deleted code {doc.code} ({code_id})")
        return CodeRead.from_document(doc)
