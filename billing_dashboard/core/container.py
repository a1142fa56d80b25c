from dataclasses import dataclass

from ..domain.ports.persistence import PersistenceGateway
from ..services.activity_service import ActivityLogger
from ..services.event_normalizer import BillingEventNormalizer
from ..services.query_service import BillingQueryService
from ..services.state_writer import BillingStateWriter
from ..services.stripe_service import StripeGateway
from ..services.subscription_service import SubscriptionLifecycleService
from ..services.user_service import UserService
from ..services.webhook_service import WebhookProcessor
from .config import Settings


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    stripe_gateway: StripeGateway
    activity_logger: ActivityLogger
    event_normalizer: BillingEventNormalizer
    state_writer: BillingStateWriter
    subscription_service: SubscriptionLifecycleService
    webhook_processor: WebhookProcessor
    user_service: UserService
    query_service: BillingQueryService
