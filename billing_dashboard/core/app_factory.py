from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.routers import payments as payments_router
from ..presentation.api.routers import plans as plans_router
from ..presentation.api.routers import subscriptions as subscriptions_router
from ..presentation.api.routers import users as users_router
from ..presentation.api.routers import webhooks as webhooks_router
from ..services.activity_service import ActivityLogger
from ..services.event_normalizer import BillingEventNormalizer
from ..services.query_service import BillingQueryService
from ..services.state_writer import BillingStateWriter
from ..services.stripe_service import StripeGateway
from ..services.subscription_service import SubscriptionLifecycleService
from ..services.user_service import UserService
from ..services.webhook_service import WebhookProcessor

logger = logging.getLogger(__name__)


def create_application(
    settings: Optional[Settings] = None,
    payment_gateway: Optional[StripeGateway] = None,
) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(
        title="Subscription Billing Dashboard",
        lifespan=_create_lifespan(settings, payment_gateway),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(users_router.router)
    app.include_router(plans_router.router)
    app.include_router(subscriptions_router.router)
    app.include_router(payments_router.router)
    app.include_router(webhooks_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"ok": True}

    return app


def _create_lifespan(settings: Settings, payment_gateway: Optional[StripeGateway]):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level)
        if settings.jwt_secret == "change-me":
            logger.warning("JWT_SECRET is using the default value. Configure a real secret in production.")

        persistence = SQLitePersistence(settings.database_path)
        gateway = payment_gateway or StripeGateway(settings.stripe_secret_key)
        activity_logger = ActivityLogger(persistence)
        normalizer = BillingEventNormalizer()
        writer = BillingStateWriter(persistence)

        container = ApplicationContainer(
            settings=settings,
            persistence=persistence,
            stripe_gateway=gateway,
            activity_logger=activity_logger,
            event_normalizer=normalizer,
            state_writer=writer,
            subscription_service=SubscriptionLifecycleService(
                persistence,
                gateway,
                writer,
                normalizer,
                activity_logger,
            ),
            webhook_processor=WebhookProcessor(
                gateway,
                normalizer,
                writer,
                persistence,
                settings.stripe_webhook_secret,
            ),
            user_service=UserService(
                persistence,
                activity_logger,
                jwt_secret=settings.jwt_secret,
                jwt_algorithm=settings.jwt_algorithm,
                jwt_expiration_hours=settings.jwt_expiration_hours,
            ),
            query_service=BillingQueryService(persistence, persistence),
        )

        app.state.container = container  # type: ignore[attr-defined]
        logger.info("Billing dashboard started with database %s", settings.database_path)

        try:
            yield
        finally:
            persistence.close()

    return lifespan
