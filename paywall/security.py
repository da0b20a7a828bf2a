import logging
import secrets
from typing import Optional

from fastapi import Depends
from fastapi.security import APIKeyHeader

from paywall.config import settings
from paywall.utils.errors import ForbiddenError

logger = logging.getLogger(__name__)


API_KEY_NAME = "X-Key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


async def verify_security_api_key(
    api_key: Optional[str] = Depends(api_key_header),
):
    """Verifies that the request is properly authenticated with an API key."""
    expected = settings.api.api_key.get_secret_value()
    if api_key is None:
        raise ForbiddenError("No API key supplied")
    if not expected or not secrets.compare_digest(api_key, expected):
        logger.warning("Rejected request with an invalid API key")
        raise ForbiddenError("Invalid API key")
