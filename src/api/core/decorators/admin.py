import secrets
from functools import wraps

from fastapi import status

from src.api.core.decorators._common import extract_request
from src.api.core.exceptions.base import MetricsException
from src.api.core.messages import MessageCode
from src.utils.logger import get_logger
from src.utils.settings.app import AppSettings

logger = get_logger(__name__)

ADMIN_KEY_HEADER = "X-Admin-Key"


def admin():
    """Require the shared admin key on the ``X-Admin-Key`` header.

    The wrapped endpoint must take ``request: Request``.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = extract_request(*args, **kwargs)

            if not request:
                raise MetricsException(
                    MessageCode.UNAUTHORIZED,
                    status.HTTP_401_UNAUTHORIZED,
                    {"description": "Request object not found"},
                )

            provided = request.headers.get(ADMIN_KEY_HEADER)
            if not provided:
                raise MetricsException(
                    MessageCode.UNAUTHORIZED,
                    status.HTTP_401_UNAUTHORIZED,
                    {"description": f"{ADMIN_KEY_HEADER} header required"},
                )

            expected = AppSettings().ADMIN_API_KEY.get_secret_value()
            if not secrets.compare_digest(provided.encode(), expected.encode()):
                logger.warning(
                    "Unauthorized admin access attempt",
                    endpoint=request.url.path,
                )
                raise MetricsException(
                    MessageCode.INVALID_API_KEY,
                    status.HTTP_403_FORBIDDEN,
                    {"description": "Admin access required"},
                )

            logger.info("Admin access granted", endpoint=request.url.path)

            return await func(*args, **kwargs)

        return wrapper

    return decorator
