from __future__ import annotations


class ConsignError(RuntimeError):
    """Base for every failure returned to a calling actor.

    ``code`` is stable and machine readable; ``message`` is what the actor sees.
    """

    code = "CONSIGN_ERROR"
    status = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None, *, details: dict | None = None):
        self.message = (message or self.default_message).strip()
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "status": int(self.status),
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ConsignError):
    code = "VALIDATION_ERROR"
    status = 400
    default_message = "Invalid request"


class InvalidAddress(ValidationError):
    code = "INVALID_ADDRESS"
    default_message = "Shipping address not found for this buyer"


class EmptyCart(ValidationError):
    code = "EMPTY_CART"
    default_message = "Cannot check out an empty cart"


class MissingProof(ValidationError):
    code = "MISSING_PROOF"
    default_message = "At least one photo is required as proof"


class ProductUnavailable(ConsignError):
    code = "PRODUCT_UNAVAILABLE"
    status = 409
    default_message = "This item is currently unavailable"


class InvalidTransition(ConsignError):
    code = "INVALID_TRANSITION"
    status = 409
    default_message = "This status change is not allowed"


class NotEligibleForRelease(ConsignError):
    code = "NOT_ELIGIBLE_FOR_RELEASE"
    status = 409
    default_message = "Escrow can only be released once the item is delivered and funds are held"


class AlreadyReleased(ConsignError):
    code = "ALREADY_RELEASED"
    status = 409
    default_message = "Escrow already released"


class AlreadyFinalized(ConsignError):
    code = "ALREADY_FINALIZED"
    status = 409
    default_message = "Escrow is no longer held"


class StateConflict(ConsignError):
    code = "STATE_CONFLICT"
    status = 409
    default_message = "This record was changed by someone else; reload and try again"


class NotFound(ConsignError):
    code = "NOT_FOUND"
    status = 404
    default_message = "Not found"


class Forbidden(ConsignError):
    code = "FORBIDDEN"
    status = 403
    default_message = "Forbidden"


class Unauthorized(ConsignError):
    code = "UNAUTHORIZED"
    status = 401
    default_message = "Missing or invalid bearer token"


class ExternalPaymentError(ConsignError):
    code = "EXTERNAL_PAYMENT_ERROR"
    status = 502
    default_message = "Payment provider failed"


class DataIntegrityError(ConsignError):
    code = "DATA_INTEGRITY_ERROR"
    status = 500
    default_message = "Stored data is inconsistent"
