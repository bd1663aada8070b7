# logging_utils.py
# Log helpers that only show request data / exception details in development.
import logging

from config import is_development


def configure_logging():
    """Basic console logging for the API process."""
    logging.basicConfig(
        level=logging.DEBUG if is_development() else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def secure_log(logger: logging.Logger, message: str, data: dict | None = None):
    if is_development() and data is not None:
        logger.info("%s %s", message, data)
    else:
        # Production: message only, no user data
        logger.info("%s", message)


def secure_error(logger: logging.Logger, message: str, error: BaseException | None = None):
    if is_development() and error is not None:
        logger.error("%s", message, exc_info=error)
    else:
        logger.error("%s", message)
