import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from trivia_economy.exceptions import (
    BoosterStateError,
    EconomyError,
    RateLimitExceeded,
    TransientInfraError,
    ValidationError,
    WalletNotFoundError,
)

STATUS_BY_ERROR = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (BoosterStateError, status.HTTP_400_BAD_REQUEST),
    (WalletNotFoundError, status.HTTP_404_NOT_FOUND),
    (RateLimitExceeded, status.HTTP_429_TOO_MANY_REQUESTS),
    (TransientInfraError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: EconomyError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def economy_error_handler(request: Request, error: EconomyError) -> JSONResponse:
    status_code = status_for(error)
    if status_code >= 500:
        logging.error(f"{request.method} {request.url.path} failed: {error}")
    return JSONResponse(
        status_code=status_code,
        content={"error": getattr(error, "code", "ECONOMY_ERROR"), "detail": str(error)},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EconomyError, economy_error_handler)
