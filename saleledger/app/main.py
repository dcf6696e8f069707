import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import saleledger.app.models.registry  # noqa: F401
from saleledger.app.api.v1.api import api_router
from saleledger.app.core.config import settings
from saleledger.app.core.errors import SaleEngineError
from saleledger.app.core.i18n import translate
from saleledger.app.middleware.language import LanguageMiddleware

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Sale Ledger POS")

# ─── CORS — restrict to configured origins ───────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Accept-Language"],
)

app.add_middleware(LanguageMiddleware)


def _language(request: Request) -> str:
    return getattr(request.state, "language", "en")


# ─── Error rendering ─────────────────────────────────────────────────────────


@app.exception_handler(SaleEngineError)
async def sale_engine_error_handler(request: Request, exc: SaleEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": translate(_language(request), exc.message_key, **exc.params),
            "code": exc.code,
            "field": exc.field,
        },
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    field = None
    if errors:
        loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
        field = ".".join(loc) or None
    return JSONResponse(
        status_code=400,
        content={
            "error": translate(_language(request), "errors.validation"),
            "code": "VALIDATION_ERROR",
            "field": field,
            "details": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in errors
            ],
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": translate(_language(request), "errors.server_error"),
            "code": "SERVER_ERROR",
            "field": None,
        },
    )


app.include_router(api_router)
