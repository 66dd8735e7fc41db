import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import SchedulingError

logger = logging.getLogger(__name__)


def http_error(exc: Exception) -> HTTPException:
    """Map a use-case failure onto the HTTP answer the client sees."""
    if isinstance(exc, SchedulingError):
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    if isinstance(exc, SQLAlchemyError):
        logger.error("Database error: %s", exc)
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service temporarily unavailable, please retry later")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def audit_failure(exc: Exception) -> HTTPException:
    logger.error("Audit log emission failed: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failure")
