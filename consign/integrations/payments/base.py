from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PaymentResult:
    ok: bool
    reference: str
    provider: str
    amount_minor: int = 0
    message: str = ""
    raw: dict | None = None


class PaymentsProvider:
    """Payment gateway as seen by the escrow engine.

    Retries and backoff for gateway flakiness belong to the provider, not to
    callers. Every method either returns a result or raises. References are
    idempotency keys: repeating an instruction under the same reference must
    not move money twice.
    """

    name = "unknown"
    currency = "VND"

    def capture(self, *, reference: str, amount_minor: int, payer_id: int, method: str, metadata: dict | None = None) -> PaymentResult:
        raise NotImplementedError

    def register_cod(self, *, reference: str, amount_minor: int, payer_id: int, metadata: dict | None = None) -> PaymentResult:
        """Cash on delivery: nothing is charged now, the courier collects at the door."""
        return PaymentResult(ok=True, reference=reference, provider=self.name, amount_minor=int(amount_minor), message="cod")

    def confirm(self, reference: str) -> PaymentResult:
        raise NotImplementedError

    def payout(self, *, reference: str, amount_minor: int, payee_id: int, metadata: dict | None = None) -> PaymentResult:
        raise NotImplementedError

    def refund(self, *, reference: str, amount_minor: int, payer_id: int, original_reference: str | None = None, metadata: dict | None = None) -> PaymentResult:
        raise NotImplementedError
