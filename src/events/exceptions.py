"""Errors raised by the fulfillment services.

Every error is scoped to a single request. Four families let callers decide what to do next:

- ``FulfillmentValidationError``: bad input or an illegal state; fix the request.
- ``InsufficientInventoryError``: the locked row had fewer units than requested; ``remaining``
  holds the authoritative count.
- ``PaymentProviderError``: the payment provider failed; no tickets were issued.
- ``InventoryBusyError``: a lock wait timed out or deadlocked; nothing was written, retry.
"""

import typing as t
from uuid import UUID


class FulfillmentError(Exception):
    """Base class for all fulfillment errors."""

    code = "fulfillment_error"
    default_message = "The request could not be fulfilled."
    retryable = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, t.Any]:
        """Structured payload for API error responses."""
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class FulfillmentValidationError(FulfillmentError):
    code = "validation_error"
    default_message = "The request is invalid."


class OrderValidationError(FulfillmentValidationError):
    """Raised when line items or buyer identity are malformed."""


class NotFoundError(FulfillmentValidationError):
    code = "not_found"
    default_message = "The requested resource does not exist."


class EventNotFoundError(NotFoundError):
    default_message = "Event not found."


class TicketTypeNotFoundError(NotFoundError):
    """Raised when a line item references a ticket type outside the event."""

    def __init__(self, ticket_type_ids: t.Iterable[UUID | str]) -> None:
        self.ticket_type_ids = [str(pk) for pk in ticket_type_ids]
        super().__init__(f"Ticket type not found: {', '.join(self.ticket_type_ids)}.")

    def to_dict(self) -> dict[str, t.Any]:
        return {**super().to_dict(), "ticket_type_ids": self.ticket_type_ids}


class TicketNotFoundError(NotFoundError):
    default_message = "Ticket not found."


class EventNotOnSaleError(FulfillmentValidationError):
    default_message = "Tickets for this event are not on sale."


class TicketTypeNotOnSaleError(FulfillmentValidationError):
    default_message = "This ticket type is not on sale."


class InvalidPromoCodeError(FulfillmentValidationError):
    default_message = "Promo code is invalid or no longer usable."


class PromoCodeExhaustedError(FulfillmentValidationError):
    """Raised when a promo code ran out of uses while the order was being placed."""

    default_message = "Promo code has reached its usage limit."


class OrderNotRefundableError(FulfillmentValidationError):
    default_message = "Only completed or partially refunded orders can be refunded."


class InvalidRefundAmountError(FulfillmentValidationError):
    default_message = "Refund amount must be positive and cannot exceed the refundable balance."


class GuestListEntryAlreadyRedeemedError(FulfillmentValidationError):
    default_message = "This guest list entry has already been redeemed."


class AlreadyOnWaitlistError(FulfillmentValidationError):
    default_message = "This email is already on the waitlist."


class TicketNotValidError(FulfillmentValidationError):
    default_message = "This ticket is not valid for entry."


class InvalidOrderTransitionError(FulfillmentValidationError):
    """Raised when an order status change is not allowed from its current status."""


class InvalidWaitlistTransitionError(FulfillmentValidationError):
    """Raised when a waitlist entry status change is not allowed from its current status."""


class InsufficientInventoryError(FulfillmentError):
    """Raised when the locked ticket type row cannot cover the requested quantity."""

    code = "insufficient_inventory"

    def __init__(self, *, ticket_type_id: UUID, ticket_type_name: str, requested: int, remaining: int) -> None:
        self.ticket_type_id = ticket_type_id
        self.ticket_type_name = ticket_type_name
        self.requested = requested
        self.remaining = remaining
        super().__init__(f"Only {remaining} ticket(s) remaining for {ticket_type_name}.")

    def to_dict(self) -> dict[str, t.Any]:
        return {
            **super().to_dict(),
            "ticket_type_id": str(self.ticket_type_id),
            "requested": self.requested,
            "remaining": self.remaining,
        }


class PaymentProviderError(FulfillmentError):
    """Raised when the payment provider rejects or fails a request."""

    code = "payment_error"
    default_message = "The payment provider could not process the request."


class InventoryBusyError(FulfillmentError):
    """Raised when a ticket type lock could not be acquired in time."""

    code = "inventory_busy"
    default_message = "Tickets are in high demand right now. Please try again."
    retryable = True
