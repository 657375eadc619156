from fastapi import HTTPException

from services.errors import BoardError
from settings import logger


def to_http_exception(error: BoardError) -> HTTPException:
    """Translate an engine failure into the HTTP error returned to the client."""
    logger.info("Board operation rejected", extra={
        "error": type(error).__name__,
        "status_code": error.status_code,
        "detail": error.message
    })
    return HTTPException(status_code=error.status_code, detail=error.message)
