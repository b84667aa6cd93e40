from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockpost.app.api.v1.router import router as v1_router
from stockpost.app.core.config import get_settings
from stockpost.app.core.logging import configure_logging
from stockpost.services.errors import (
    ConcurrencyConflict,
    InsufficientStockForReversal,
    InvalidTransition,
    OrderNotFound,
    ProductNotFound,
    StockPostError,
    SupplierNotFound,
)

ERROR_STATUS = {
    InvalidTransition: 409,
    InsufficientStockForReversal: 409,
    ConcurrencyConflict: 409,
    OrderNotFound: 404,
    ProductNotFound: 404,
    SupplierNotFound: 404,
}

settings = get_settings()
configure_logging(settings.log_level, json_output=settings.log_json)

app = FastAPI(title="STOCKPOST", version="0.1.0")


@app.exception_handler(StockPostError)
async def stock_post_error_to_response(request: Request, exc: StockPostError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": exc.code, "retryable": exc.retryable},
    )


app.include_router(v1_router, prefix="/v1")
