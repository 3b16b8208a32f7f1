from __future__ import annotations

import threading

from consign.integrations.payments.base import PaymentResult, PaymentsProvider


class MockPaymentsProvider(PaymentsProvider):
    """In-memory gateway; keeps every instruction it was given, once per reference."""

    name = "mock"

    def __init__(self):
        self.instructions: list[dict] = []
        self._failures: dict[str, str] = {}
        self._lock = threading.Lock()

    def fail_next(self, kind: str, message: str = "mock gateway declined") -> None:
        self._failures[kind] = message

    def instructions_of(self, kind: str) -> list[dict]:
        return [i for i in self.instructions if i.get("kind") == kind]

    def _record(self, kind: str, *, reference: str, amount_minor: int, party_id: int, metadata: dict | None) -> PaymentResult:
        with self._lock:
            message = self._failures.pop(kind, None)
            if message is not None:
                return PaymentResult(ok=False, reference=reference, provider=self.name, amount_minor=int(amount_minor), message=message)
            for earlier in self.instructions:
                if earlier["kind"] == kind and earlier["reference"] == reference:
                    return PaymentResult(ok=True, reference=f"mock-{kind}-{reference}", provider=self.name, amount_minor=earlier["amount_minor"], raw=earlier)
            entry = {
                "kind": kind,
                "reference": reference,
                "amount_minor": int(amount_minor),
                "party_id": int(party_id),
                "metadata": metadata or {},
            }
            self.instructions.append(entry)
        return PaymentResult(ok=True, reference=f"mock-{kind}-{reference}", provider=self.name, amount_minor=int(amount_minor), raw=entry)

    def capture(self, *, reference: str, amount_minor: int, payer_id: int, method: str, metadata: dict | None = None) -> PaymentResult:
        return self._record("capture", reference=reference, amount_minor=amount_minor, party_id=payer_id, metadata={**(metadata or {}), "method": method})

    def register_cod(self, *, reference: str, amount_minor: int, payer_id: int, metadata: dict | None = None) -> PaymentResult:
        return self._record("cod", reference=reference, amount_minor=amount_minor, party_id=payer_id, metadata=metadata)

    def confirm(self, reference: str) -> PaymentResult:
        return PaymentResult(ok=True, reference=reference, provider=self.name, raw={"reference": reference})

    def payout(self, *, reference: str, amount_minor: int, payee_id: int, metadata: dict | None = None) -> PaymentResult:
        return self._record("payout", reference=reference, amount_minor=amount_minor, party_id=payee_id, metadata=metadata)

    def refund(self, *, reference: str, amount_minor: int, payer_id: int, original_reference: str | None = None, metadata: dict | None = None) -> PaymentResult:
        return self._record(
            "refund",
            reference=reference,
            amount_minor=amount_minor,
            party_id=payer_id,
            metadata={**(metadata or {}), "original_reference": original_reference or ""},
        )
