from fastapi import HTTPException, status

from ...domain.errors import (
    BillingError,
    InvalidStateError,
    NotFoundError,
    PaymentProcessorError,
    ReconciliationGap,
    ValidationError,
)

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PaymentProcessorError, status.HTTP_402_PAYMENT_REQUIRED),
    (InvalidStateError, status.HTTP_409_CONFLICT),
)


def to_http_exception(exc: BillingError) -> HTTPException:
    """Translate a billing error into the response the API returns for it."""
    if isinstance(exc, ReconciliationGap):
        # Internal detail stays in the server log.
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="The billing change was accepted but could not be saved. Support has been notified.",
        )
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Billing error")
