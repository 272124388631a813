import logging
from functools import wraps

from fastapi import HTTPException, status

from marketchat.services.exceptions import ServiceError, SignedUrlError, StorageError

logger = logging.getLogger(__name__)


def handle_route_errors(func):
    """
    A decorator to standardize error handling in API routes.
    Service-layer exceptions become HTTP errors carrying their own status
    code and message; anything else is logged and reported as a 500.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except (SignedUrlError, StorageError) as e:
            # Expected outcomes for a file route: bad links and missing objects
            logger.warning(
                f"{func.__name__} refused: {e.__class__.__name__} ({e.status_code}) - {e.message}"
            )
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except ServiceError as e:
            logger.error(
                f"Service error in {func.__name__} route: {e}", exc_info=True
            )
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(
                f"Unexpected error in {func.__name__} route: {e}", exc_info=True
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An unexpected server error occurred.",
            )

    return wrapper
