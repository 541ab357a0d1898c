# dentalshop/exception_handlers.py
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dentalshop.services.errors import PaymentProviderError, ShopError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps domain errors to JSON responses: {"detail": ..., "error": <kind>, ...}.
    Provider details are logged but never sent to the shopper.
    """
    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        if isinstance(exc, PaymentProviderError):
            logger.error(
                "%s on %s %s: %s (provider status=%s, detail=%s)",
                exc.kind, request.method, request.url.path, exc.message, exc.provider_status, exc.provider_detail,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
