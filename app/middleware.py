import sys
import time

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import RequestResponseEndpoint


def configure_logging(level: str) -> None:
    """Single stderr sink; called once from the app factory."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan> - <level>{message}</level>",
        backtrace=False,
        diagnose=False,
    )


async def log_requests(request: Request, call_next: RequestResponseEndpoint) -> Response:
    """Log `METHOD path status duration` once the response is produced."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "{} {} {} {:.1f}ms",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response
