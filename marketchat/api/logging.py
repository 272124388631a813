import logging
from functools import wraps


def log_route_call(func):
    """
    A decorator to log the entry and exit of a route function.
    Signed URL tokens are capabilities, so keyword arguments named 'token'
    are masked before logging.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__)

        logged_kwargs = {
            k: ("***" if k == "token" else repr(v)) for k, v in kwargs.items()
        }
        logger.info(f"Entering route: {func.__name__} (kwargs: {logged_kwargs})")
        try:
            result = await func(*args, **kwargs)
            logger.info(f"Successfully exited route: {func.__name__}")
            return result
        except Exception as e:
            logger.error(
                f"Error during route: {func.__name__}. Exception: {type(e).__name__} - {e}",
                exc_info=False,
            )
            raise

    return wrapper
