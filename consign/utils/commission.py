from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

SNAPSHOT_VERSION = 1

# Platform fee retained on release, by seller fee tier, in basis points.
TIER_FEE_BPS = {
    "NEW_SELLER": 1000,
    "RISING_SELLER": 800,
    "PRO_SELLER": 600,
    "ELITE_SELLER": 500,
}
DEFAULT_TIER = "NEW_SELLER"


def _clamp_minor(value: int | float | Decimal | None) -> int:
    try:
        parsed = int(value or 0)
    except (TypeError, ValueError):
        parsed = 0
    return parsed if parsed > 0 else 0


def money_major_to_minor(amount: float | Decimal | int | None) -> int:
    try:
        parsed = Decimal(str(amount or 0))
    except ArithmeticError:
        parsed = Decimal("0")
    minor = (parsed * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return _clamp_minor(int(minor))


def money_minor_to_major(minor: int | float | Decimal | None) -> float:
    try:
        parsed = Decimal(int(minor or 0))
    except (TypeError, ValueError):
        parsed = Decimal("0")
    return float((parsed / Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _bps_minor_half_up(amount_minor: int, bps: int) -> int:
    amt = Decimal(_clamp_minor(amount_minor))
    rate = Decimal(int(max(0, bps)))
    raw = (amt * rate) / Decimal("10000")
    return _clamp_minor(int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def fee_bps_for_tier(fee_tier: str | None) -> int:
    tier = (fee_tier or DEFAULT_TIER).strip().upper()
    return int(TIER_FEE_BPS.get(tier, TIER_FEE_BPS[DEFAULT_TIER]))


def compute_sale_split_minor(*, price_minor: int, fee_tier: str | None) -> dict:
    """Fee snapshot taken once at checkout; never recomputed afterwards."""
    held = _clamp_minor(price_minor)
    bps = fee_bps_for_tier(fee_tier)
    fee = _bps_minor_half_up(held, bps)
    payout = held - fee
    if payout < 0:
        payout = 0
    return {
        "snapshot_version": SNAPSHOT_VERSION,
        "fee_tier": (fee_tier or DEFAULT_TIER).strip().upper(),
        "fee_bps": bps,
        "held_minor": int(held),
        "fee_minor": int(fee),
        "payout_minor": int(payout),
    }
