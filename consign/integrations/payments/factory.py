from __future__ import annotations

from flask import current_app

from consign.integrations.common import IntegrationMisconfiguredError
from consign.integrations.payments.base import PaymentsProvider
from consign.integrations.payments.mock_provider import MockPaymentsProvider
from consign.integrations.payments.paystack_provider import PaystackPaymentsProvider

EXTENSION_KEY = "consign.payments"


def build_payments_provider(config) -> PaymentsProvider:
    provider = (config.get("PAYMENTS_PROVIDER") or "mock").strip().lower()

    if provider == "mock":
        return MockPaymentsProvider()

    if provider != "paystack":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    secret_key = (config.get("PAYSTACK_SECRET_KEY") or "").strip()
    if not secret_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing PAYSTACK_SECRET_KEY")

    return PaystackPaymentsProvider(secret_key=secret_key)


def init_payments(app) -> PaymentsProvider:
    provider = build_payments_provider(app.config)
    app.extensions[EXTENSION_KEY] = provider
    app.logger.info("payments_provider_ready provider=%s", provider.name)
    return provider


def get_payments_provider() -> PaymentsProvider:
    return current_app.extensions[EXTENSION_KEY]


def payment_health(config) -> dict:
    provider = (config.get("PAYMENTS_PROVIDER") or "mock").strip().lower()
    missing = []
    if provider == "paystack" and not (config.get("PAYSTACK_SECRET_KEY") or "").strip():
        missing.append("PAYSTACK_SECRET_KEY")
    return {
        "status": "misconfigured" if missing else "configured",
        "provider": provider,
        "missing": missing,
    }
