from __future__ import annotations

from consign.errors import ExternalPaymentError
from consign.integrations.payments.base import PaymentResult


class IntegrationMisconfiguredError(RuntimeError):
    pass


def require_ok(result: PaymentResult | None, *, action: str) -> PaymentResult:
    """Turn a declined gateway result into a typed failure."""
    if result is None:
        raise ExternalPaymentError(f"{action}: no response from payment provider")
    if not result.ok:
        raise ExternalPaymentError(f"{action}: {result.message or 'declined'}")
    return result


def call_gateway(action: str, fn, **kwargs) -> PaymentResult:
    try:
        result = fn(**kwargs)
    except ExternalPaymentError:
        raise
    except Exception as e:
        raise ExternalPaymentError(f"{action}: {e}") from e
    return require_ok(result, action=action)
