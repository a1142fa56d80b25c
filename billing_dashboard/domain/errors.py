"""Error taxonomy shared by the billing services."""

from __future__ import annotations

from typing import Optional


class BillingError(Exception):
    """Base class for billing failures, decorated with entity and operation context."""

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.operation = operation

    def __str__(self) -> str:
        context = [part for part in (self.operation, self.entity) if part]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ValidationError(BillingError):
    """Malformed inbound event or command input."""


class NotFoundError(BillingError):
    """Referenced record does not exist or is not visible to the caller."""


class PaymentProcessorError(BillingError):
    """A Stripe call failed; local state was left untouched."""


class InvalidStateError(BillingError):
    """Command requested against a subscription whose status forbids it."""


class ReconciliationGap(BillingError):
    """Stripe accepted a change that could not be persisted locally."""

    def __init__(
        self,
        message: str,
        *,
        external_ref: Optional[str] = None,
        entity: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message, entity=entity, operation=operation)
        self.external_ref = external_ref
