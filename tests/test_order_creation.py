from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from consign.errors import (
    EmptyCart,
    ExternalPaymentError,
    Forbidden,
    InvalidAddress,
    NotFound,
    ProductUnavailable,
    ValidationError,
)
from consign.extensions import db
from consign.models import EscrowRecord, Listing, Order, OrderItem
from consign.services import order_service

from consign_testkit import PRICE_MINOR, SHIPPING_MINOR, ConsignAppTestCase, make_address, make_listing, make_user


class OrderCreationTestCase(ConsignAppTestCase):
    def setUp(self):
        super().setUp()
        self.seed_parties()

    def test_checkout_creates_pending_lines_with_held_escrow(self):
        first = make_listing(self.seller)
        second = make_listing(self.other_seller, price_minor=2500000)

        order = self.place_order(first, second)

        self.assertEqual(order.status, "PENDING")
        self.assertEqual(order.escrow_status, "HOLDING")
        self.assertEqual(len(order.items), 2)
        for item in order.items:
            self.assertEqual(item.status, "PENDING")
            self.assertEqual(item.escrow.status, "HOLDING")
            self.assertEqual(item.escrow.held_minor, item.price_minor)
            self.assertEqual(
                item.escrow.seller_payout_minor,
                item.escrow.held_minor - item.escrow.platform_fee_minor,
            )

        by_product = {i.product_id: i for i in order.items}
        # NEW_SELLER pays 10%, PRO_SELLER 6%.
        self.assertEqual(by_product[first.id].escrow.platform_fee_minor, 100000)
        self.assertEqual(by_product[second.id].escrow.platform_fee_minor, 150000)

        self.assertEqual(order.items_total_minor, PRICE_MINOR + 2500000)
        self.assertEqual(order.shipping_total_minor, 2 * SHIPPING_MINOR)
        self.assertEqual(order.platform_fee_total_minor, 250000)

        # Cash on delivery registers the order with the gateway but charges nothing.
        self.assertEqual(self.payments.instructions_of("capture"), [])
        cod = self.payments.instructions_of("cod")
        self.assertEqual(len(cod), 1)
        self.assertEqual(cod[0]["amount_minor"], order.grand_total_minor)
        self.assertTrue(order.payment_reference.startswith("mock-cod-"))

        self.assertEqual(db.session.get(Listing, first.id).status, "SOLD")
        self.assertEqual(db.session.get(Listing, second.id).status, "SOLD")

    def test_product_snapshot_survives_catalog_edits(self):
        listing = make_listing(self.seller)
        order = self.place_order(listing)
        original_title = listing.title

        listing.title = "Renamed after sale"
        listing.price_minor = 1
        self.address.city = "Da Nang"
        db.session.commit()

        db.session.expire_all()
        item = db.session.get(Order, order.id).items[0]
        self.assertEqual(item.product_title, original_title)
        self.assertEqual(item.price_minor, PRICE_MINOR)
        self.assertEqual(item.order.shipping_address()["city"], "Ho Chi Minh City")

    def test_empty_cart(self):
        for items in (None, []):
            with self.subTest(items=items):
                with self.assertRaises(EmptyCart):
                    order_service.create_order(self.buyer, self.address.id, items, "COD")

    def test_address_must_belong_to_buyer(self):
        listing = make_listing(self.seller)
        stranger = make_user("buyer")
        foreign = make_address(stranger)
        for address_id in (foreign.id, 99999, None):
            with self.subTest(address_id=address_id):
                with self.assertRaises(InvalidAddress):
                    order_service.create_order(self.buyer, address_id, [{"productId": listing.id}], "COD")
        self.assertEqual(Order.query.count(), 0)

    def test_unavailable_products(self):
        sold = make_listing(self.seller, status="SOLD")
        own = make_listing(self.buyer)
        for product_id in (sold.id, own.id, 424242):
            with self.subTest(product_id=product_id):
                with self.assertRaises(ProductUnavailable):
                    order_service.create_order(self.buyer, self.address.id, [{"productId": product_id}], "COD")
        self.assertEqual(Order.query.count(), 0)

    def test_second_buyer_cannot_buy_a_sold_listing(self):
        listing = make_listing(self.seller)
        self.place_order(listing)
        rival = make_user("buyer")
        with self.assertRaises(ProductUnavailable) as ctx:
            self.place_order(listing, buyer=rival, address=make_address(rival))
        self.assertIn("sold", ctx.exception.message.lower())

    def test_malformed_cart_and_payment_method(self):
        listing = make_listing(self.seller)
        with self.assertRaises(ValidationError):
            order_service.create_order(self.buyer, self.address.id, [{"productId": listing.id}] * 2, "COD")
        with self.assertRaises(ValidationError):
            order_service.create_order(self.buyer, self.address.id, [{"productId": "abc"}], "COD")
        with self.assertRaises(ValidationError):
            order_service.create_order(self.buyer, self.address.id, [{"productId": listing.id}], "BARTER")
        self.assertEqual(db.session.get(Listing, listing.id).status, "ACTIVE")

    def test_capture_failure_persists_nothing(self):
        first = make_listing(self.seller)
        second = make_listing(self.other_seller)
        self.payments.fail_next("capture", "card declined")

        with self.assertRaises(ExternalPaymentError) as ctx:
            self.place_order(first, second, method="STRIPE_CARD", payment_reference="card-ref-1")
        self.assertIn("card declined", ctx.exception.message)

        db.session.expire_all()
        self.assertEqual(Order.query.count(), 0)
        self.assertEqual(OrderItem.query.count(), 0)
        self.assertEqual(EscrowRecord.query.count(), 0)
        self.assertEqual(db.session.get(Listing, first.id).status, "ACTIVE")
        self.assertEqual(db.session.get(Listing, second.id).status, "ACTIVE")

        # The same cart goes through once the gateway recovers.
        order = self.place_order(first, second, method="STRIPE_CARD", payment_reference="card-ref-1")
        self.assertEqual(len(order.items), 2)
        captures = self.payments.instructions_of("capture")
        self.assertEqual([c["reference"] for c in captures], ["card-ref-1"])
        self.assertEqual(captures[0]["amount_minor"], order.grand_total_minor)

    def test_card_payment_needs_the_buyers_reference(self):
        listing = make_listing(self.seller)
        for reference in (None, "", "   "):
            with self.subTest(reference=reference):
                with self.assertRaises(ValidationError):
                    self.place_order(listing, method="STRIPE_CARD", payment_reference=reference)
        self.assertEqual(db.session.get(Listing, listing.id).status, "ACTIVE")
        self.assertEqual(self.payments.instructions_of("capture"), [])

    def test_one_charge_cannot_pay_for_two_orders(self):
        self.place_order(make_listing(self.seller), method="STRIPE_CARD", payment_reference="card-ref-9")
        second = make_listing(self.other_seller)
        with self.assertRaises(ValidationError):
            self.place_order(second, method="STRIPE_CARD", payment_reference="card-ref-9")
        db.session.expire_all()
        self.assertEqual(Order.query.count(), 1)
        self.assertEqual(db.session.get(Listing, second.id).status, "ACTIVE")


def _paystack_response(status_code: int, body: dict):
    res = MagicMock()
    res.status_code = status_code
    res.content = b"{}"
    res.json.return_value = body
    return res


class PaystackCheckoutTestCase(ConsignAppTestCase):
    config_overrides = {"PAYMENTS_PROVIDER": "paystack", "PAYSTACK_SECRET_KEY": "sk_test"}

    def setUp(self):
        super().setUp()
        self.seed_parties()
        self.paid = {"PSK_paid_1": PRICE_MINOR + SHIPPING_MINOR}

    def _gateway(self, method, url, **kwargs):
        reference = url.rsplit("/", 1)[-1]
        if "/transaction/verify/" in url and reference in self.paid:
            data = {"status": "success", "reference": reference, "amount": self.paid[reference]}
            return _paystack_response(200, {"status": True, "data": data})
        return _paystack_response(400, {"status": False, "message": "Transaction reference not found"})

    def test_card_checkout_verifies_the_buyers_reference(self):
        listing = make_listing(self.seller)
        with patch("consign.integrations.payments.paystack_provider.requests.request", side_effect=self._gateway) as req:
            order = self.place_order(listing, method="STRIPE_CARD", payment_reference="PSK_paid_1")
        self.assertEqual(order.payment_reference, "PSK_paid_1")
        self.assertEqual(order.grand_total_minor, PRICE_MINOR + SHIPPING_MINOR)
        self.assertEqual(req.call_count, 1)
        self.assertTrue(req.call_args.args[1].endswith("/transaction/verify/PSK_paid_1"))

    def test_unknown_or_short_charge_is_rejected(self):
        listing = make_listing(self.seller)
        self.paid["PSK_short"] = PRICE_MINOR
        with patch("consign.integrations.payments.paystack_provider.requests.request", side_effect=self._gateway):
            for reference in ("PSK_never_paid", "PSK_short"):
                with self.subTest(reference=reference):
                    with self.assertRaises(ExternalPaymentError):
                        self.place_order(listing, method="STRIPE_CARD", payment_reference=reference)
        db.session.expire_all()
        self.assertEqual(Order.query.count(), 0)
        self.assertEqual(db.session.get(Listing, listing.id).status, "ACTIVE")

    def test_cash_on_delivery_never_calls_the_gateway(self):
        listing = make_listing(self.seller)
        with patch("consign.integrations.payments.paystack_provider.requests.request") as req:
            order = self.place_order(listing)
        req.assert_not_called()
        self.assertEqual(order.payment_method, "COD")
        self.assertTrue(order.payment_reference.startswith("cod:"))


class OrderDetailTestCase(ConsignAppTestCase):
    def setUp(self):
        super().setUp()
        self.seed_parties()
        self.order = self.place_order(
            make_listing(self.seller),
            make_listing(self.seller),
            make_listing(self.other_seller),
        )

    def test_buyer_sees_lines_grouped_by_seller(self):
        detail = order_service.get_order_detail(self.order.id, self.buyer)
        self.assertEqual(detail["viewer"], "buyer")
        self.assertEqual(detail["status"], "PENDING")
        groups = {g["seller"]["id"]: g["items"] for g in detail["sellers"]}
        self.assertEqual(len(groups[self.seller.id]), 2)
        self.assertEqual(len(groups[self.other_seller.id]), 1)

    def test_seller_sees_only_their_own_lines(self):
        detail = order_service.get_order_detail(self.order.id, self.other_seller)
        self.assertEqual(detail["viewer"], "seller")
        self.assertEqual([g["seller"]["id"] for g in detail["sellers"]], [self.other_seller.id])

    def test_uninvolved_users_are_refused(self):
        for user in (make_user("buyer"), make_user("seller"), self.courier):
            with self.subTest(role=user.role):
                with self.assertRaises(Forbidden):
                    order_service.get_order_detail(self.order.id, user)

    def test_missing_order(self):
        with self.assertRaises(NotFound):
            order_service.get_order_detail(987654, self.buyer)


if __name__ == "__main__":
    unittest.main()
