import logging
from typing import Optional

from fastapi import FastAPI

from saas_billing_svc.config import Settings, load_settings
from saas_billing_svc.models.base import create_engine_from_url, init_db, make_session_factory
from saas_billing_svc.notifications import Notifier
from saas_billing_svc.rate_limit import SlidingWindowLimiter
from saas_billing_svc.routers import billing_router, stripe_router
from saas_billing_svc.stripe_integration import StripeIntegration


def build_stripe_integration(settings: Settings) -> Optional[StripeIntegration]:
    if not settings.STRIPE_SECRET_KEY:
        logging.warning("STRIPE_SECRET_KEY not set; billing operations will fail with a configuration error.")
        return None
    return StripeIntegration(
        settings.STRIPE_SECRET_KEY,
        max_retries=settings.STRIPE_MAX_RETRIES,
        retry_delay=settings.STRIPE_RETRY_DELAY,
    )


def create_app(settings: Optional[Settings] = None,
               stripe_integration: Optional[StripeIntegration] = None,
               notifier: Optional[Notifier] = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    app = FastAPI(debug=settings.DEBUG)

    engine = create_engine_from_url(settings.DATABASE_URL)
    init_db(engine)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.stripe_integration = stripe_integration or build_stripe_integration(settings)
    app.state.notifier = notifier or Notifier()
    app.state.rate_limiter = SlidingWindowLimiter(settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)

    app.include_router(billing_router.router, prefix="/api/billing")
    # Include the Stripe router under the '/api/stripe' prefix
    app.include_router(stripe_router.router, prefix="/api/stripe")

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
