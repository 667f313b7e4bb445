import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api.endpoints import account, admin, ai_history, coins, payments, vouchers
from storefront.core.database import Base, engine
from storefront.core.errors import StorefrontError
from storefront.core.settings import settings

# Imported for their side effect of registering tables on Base.metadata.
from storefront.models import (  # noqa: F401
    coin_account,
    coin_transaction,
    generation_history,
    payment_transaction,
    profile,
    store,
    voucher,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("storefront")

app = FastAPI(title="Storefront Coins & Payments API")

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.is_production and not settings.auth_jwt_secret:
        raise RuntimeError("AUTH_JWT_SECRET must be set in production")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("request.failed path=%s detail=%s", request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("request.unhandled path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# API Routes
app.include_router(account.router, prefix="/api", tags=["account"])
app.include_router(coins.router, prefix="/api", tags=["coins"])
app.include_router(ai_history.router, prefix="/api", tags=["ai-history"])
app.include_router(vouchers.router, prefix="/api", tags=["vouchers"])
app.include_router(payments.router, prefix="/api", tags=["payments"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
