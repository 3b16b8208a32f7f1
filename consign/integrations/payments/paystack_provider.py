from __future__ import annotations

import requests

from consign.integrations.payments.base import PaymentResult, PaymentsProvider

_BASE_URL = "https://api.paystack.co"


class PaystackPaymentsProvider(PaymentsProvider):
    name = "paystack"
    currency = "NGN"

    def __init__(self, secret_key: str, timeout: int = 25):
        self.secret_key = secret_key
        self.timeout = timeout

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _call(self, method: str, path: str, *, label: str, payload: dict | None = None) -> dict:
        r = requests.request(method, f"{_BASE_URL}{path}", headers=self._headers(), json=payload, timeout=self.timeout)
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300 or j.get("status") is not True:
            msg = (j.get("message") or f"HTTP {r.status_code}").strip()
            raise RuntimeError(f"PAYSTACK_{label}_FAILED:{msg}")
        return j if isinstance(j, dict) else {"payload": j}

    def capture(self, *, reference: str, amount_minor: int, payer_id: int, method: str, metadata: dict | None = None) -> PaymentResult:
        # The buyer pays through the hosted checkout; capture confirms the charge landed in full.
        if not (reference or "").strip():
            raise RuntimeError("PAYSTACK_VERIFY_FAILED:missing transaction reference")
        result = self.confirm(reference)
        if result.ok and int(result.amount_minor) < int(amount_minor):
            return PaymentResult(
                ok=False,
                reference=reference,
                provider=self.name,
                amount_minor=result.amount_minor,
                message=f"captured {result.amount_minor} < expected {int(amount_minor)}",
                raw=result.raw,
            )
        return result

    def confirm(self, reference: str) -> PaymentResult:
        ref = (reference or "").strip()
        j = self._call("GET", f"/transaction/verify/{ref}", label="VERIFY")
        data = j.get("data") or {}
        status = (data.get("status") or "").strip().lower()
        return PaymentResult(
            ok=status == "success",
            reference=(data.get("reference") or ref).strip(),
            provider=self.name,
            amount_minor=int(data.get("amount") or 0),
            message=status,
            raw=j,
        )

    def _existing_transfer(self, reference: str) -> dict | None:
        try:
            j = self._call("GET", f"/transfer/verify/{reference}", label="TRANSFER_VERIFY")
        except RuntimeError:
            return None
        data = j.get("data") or {}
        if (data.get("status") or "").strip().lower() in ("success", "pending"):
            return j
        return None

    def payout(self, *, reference: str, amount_minor: int, payee_id: int, metadata: dict | None = None) -> PaymentResult:
        meta = metadata or {}
        recipient = (meta.get("recipient_code") or "").strip()
        if not recipient:
            raise RuntimeError(f"PAYSTACK_TRANSFER_FAILED:no recipient_code for payee {int(payee_id)}")
        try:
            j = self._call(
                "POST",
                "/transfer",
                label="TRANSFER",
                payload={
                    "source": "balance",
                    "amount": int(amount_minor),
                    "recipient": recipient,
                    "reference": reference,
                    "reason": meta.get("reason") or "Escrow release",
                },
            )
        except RuntimeError:
            # A repeated reference is refused; the transfer it names may already exist.
            j = self._existing_transfer(reference)
            if j is None:
                raise
        data = j.get("data") or {}
        return PaymentResult(
            ok=True,
            reference=(data.get("transfer_code") or reference).strip(),
            provider=self.name,
            amount_minor=int(amount_minor),
            raw=j,
        )

    def refund(self, *, reference: str, amount_minor: int, payer_id: int, original_reference: str | None = None, metadata: dict | None = None) -> PaymentResult:
        j = self._call(
            "POST",
            "/refund",
            label="REFUND",
            payload={"transaction": original_reference or reference, "amount": int(amount_minor)},
        )
        data = j.get("data") or {}
        return PaymentResult(
            ok=True,
            reference=str(data.get("id") or reference),
            provider=self.name,
            amount_minor=int(amount_minor),
            raw=j,
        )
