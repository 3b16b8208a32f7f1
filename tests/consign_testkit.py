from __future__ import annotations

import itertools
import unittest

from consign import create_app
from consign.extensions import db
from consign.integrations.payments.factory import get_payments_provider
from consign.models import Address, Listing, OrderItem, User
from consign.services import delivery_service, fulfillment_service, order_service
from consign.services.order_status import ItemStatus
from consign.utils.jwt_utils import create_token

PRICE_MINOR = 1000000
SHIPPING_MINOR = 3000000

_seq = itertools.count(1)


def app_config(**overrides) -> dict:
    config = {
        "TESTING": True,
        "SECRET_KEY": "consign-test-secret-key",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "PAYMENTS_PROVIDER": "mock",
        "SHIPPING_FEE_MINOR": SHIPPING_MINOR,
        "DISPUTE_WINDOW_DAYS": 7,
    }
    config.update(overrides)
    return config


def make_user(role: str, *, fee_tier: str = "NEW_SELLER", name: str | None = None) -> User:
    n = next(_seq)
    u = User(
        name=name or f"{role.title()} {n}",
        email=f"{role}-{n}@consign.test",
        role=role,
        fee_tier=fee_tier,
    )
    u.set_password("Passw0rd!")
    db.session.add(u)
    db.session.commit()
    return u


def make_address(user: User, city: str = "Ho Chi Minh City") -> Address:
    a = Address(
        user_id=int(user.id),
        recipient_name=user.name,
        phone="0900000000",
        street_address=f"{next(_seq)} Nguyen Hue",
        city=city,
        country="VN",
        is_default=True,
    )
    db.session.add(a)
    db.session.commit()
    return a


def make_listing(seller: User, *, price_minor: int = PRICE_MINOR, status: str = "ACTIVE") -> Listing:
    n = next(_seq)
    listing = Listing(
        seller_id=int(seller.id),
        title=f"Vintage jacket #{n}",
        image_url=f"https://img.consign.test/{n}.jpg",
        condition="GOOD",
        category="fashion",
        price_minor=int(price_minor),
        status=status,
    )
    db.session.add(listing)
    db.session.commit()
    return listing


def advance_item(item_id: int, target: str, *, seller: User, courier: User) -> None:
    """Walk one line along the happy path, one recorded step at a time."""
    steps = {
        ItemStatus.PROCESSING: lambda: fulfillment_service.mark_processing(item_id, seller),
        ItemStatus.AWAITING_PICKUP: lambda: fulfillment_service.request_pickup(item_id, seller),
        ItemStatus.IN_WAREHOUSE: lambda: fulfillment_service.confirm_pickup(item_id, courier, ["pickup.jpg"]),
        ItemStatus.OUT_FOR_DELIVERY: lambda: fulfillment_service.dispatch_item(item_id, courier),
        ItemStatus.DELIVERED: lambda: delivery_service.confirm_delivery(item_id, courier, ["door.jpg"]),
    }
    current = db.session.get(OrderItem, int(item_id)).status
    path = ItemStatus.HAPPY_PATH
    for status in path[path.index(current) + 1:path.index(target) + 1]:
        steps[status]()


class ConsignAppTestCase(unittest.TestCase):
    """Fresh app and in-memory database per test, mock payment gateway."""

    config_overrides: dict = {}

    def setUp(self):
        self.app = create_app(app_config(**self.config_overrides))
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.payments = get_payments_provider()
        self.client = self.app.test_client()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def seed_parties(self) -> None:
        self.buyer = make_user("buyer")
        self.address = make_address(self.buyer)
        self.seller = make_user("seller")
        self.other_seller = make_user("seller", fee_tier="PRO_SELLER")
        self.courier = make_user("shipper")
        self.admin = make_user("admin")

    def place_order(
        self,
        *listings,
        buyer: User | None = None,
        address: Address | None = None,
        method: str = "COD",
        payment_reference: str | None = None,
    ):
        buyer = buyer or self.buyer
        address = address or self.address
        return order_service.create_order(
            buyer,
            int(address.id),
            [{"productId": int(listing.id)} for listing in listings],
            method,
            payment_reference=payment_reference,
        )

    def auth_headers(self, user: User) -> dict:
        return {"Authorization": f"Bearer {create_token(int(user.id))}"}
