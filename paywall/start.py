"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from paywall.config import settings
from paywall.db import init_db
from paywall.routers import auth, codes, coupons, health, payments, users
from paywall.services.payment_provider import PaymentProvider
from paywall.utils.errors import ConfigurationError, register_error_handlers
from paywall.utils.logging_config import setup_logging
from paywall.utils.middleware import setup_middleware

logger = logging.getLogger(__name__)

# Set up logging
setup_logging()


def configure_payment_provider(app: FastAPI) -> None:
    """Build the payment provider, keeping the app up without it.

    Payment routes report the stored configuration error until Stripe is set up.
    """
    try:
        app.state.payment_provider = PaymentProvider.from_settings(settings.stripe)
        app.state.payment_provider_error = None
    except ConfigurationError as e:
        logger.error(f"Payments disabled: {e.message}")
        app.state.payment_provider = None
        app.state.payment_provider_error = e


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application")

    # Initialize database first
    client = await init_db()
    configure_payment_provider(app)
    yield
    logger.info("Shutting down application")
    await client.close()


app = FastAPI(
    title="Paywall",
    version="0.1.0",
    lifespan=lifespan,
)

setup_middleware(app)
register_error_handlers(app)

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(codes.router)
app.include_router(coupons.router)
app.include_router(payments.router)


@app.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def root() -> str:
    return "App is working fine"


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("paywall.start:app", host="0.0.0.0", port=8000, reload=settings.api.environment == "development")
