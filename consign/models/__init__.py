from consign.models.user import User
from consign.models.address import Address
from consign.models.listing import Listing, ListingStatus
from consign.models.order import (
    DeliveryProof,
    EscrowRecord,
    Order,
    OrderItem,
    OrderItemTransition,
)
from consign.models.escrow_transition import EscrowTransition

__all__ = [
    "User",
    "Address",
    "Listing",
    "ListingStatus",
    "Order",
    "OrderItem",
    "EscrowRecord",
    "DeliveryProof",
    "OrderItemTransition",
    "EscrowTransition",
]
