from __future__ import annotations

import unittest

from consign_testkit import ConsignAppTestCase, make_listing


class HttpOrderFlowTestCase(ConsignAppTestCase):
    def setUp(self):
        super().setUp()
        self.seed_parties()

    def _post(self, path: str, user, json=None):
        res = self.client.post(path, json=json or {}, headers=self.auth_headers(user))
        self.assertEqual(res.status_code // 100, 2, res.get_json())
        return res.get_json()

    def _get(self, path: str, user):
        res = self.client.get(path, headers=self.auth_headers(user))
        self.assertEqual(res.status_code, 200, res.get_json())
        return res.get_json()

    def test_login_and_me(self):
        res = self.client.post("/api/auth/login", json={"email": self.buyer.email, "password": "Passw0rd!"})
        self.assertEqual(res.status_code, 200)
        token = res.get_json()["token"]
        me = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).get_json()
        self.assertEqual(me["user"]["id"], self.buyer.id)
        self.assertEqual(me["user"]["role"], "buyer")

        bad = self.client.post("/api/auth/login", json={"email": self.buyer.email, "password": "wrong"})
        self.assertEqual(bad.status_code, 401)

    def test_checkout_to_release(self):
        listing = make_listing(self.seller)
        created = self._post(
            "/api/orders",
            self.buyer,
            {
                "shippingAddressId": self.address.id,
                "items": [{"productId": listing.id, "notes": "please wrap it"}],
                "paymentMethod": "cod",
            },
        )
        order = created["order"]
        self.assertEqual(order["status"], "PENDING")
        self.assertEqual(order["payment_method"], "COD")
        item_id = order["items"][0]["id"]
        self.assertEqual(order["items"][0]["notes"], "please wrap it")

        mine = self._get("/api/orders/my", self.buyer)["items"]
        self.assertEqual([o["id"] for o in mine], [order["id"]])

        self._post(f"/api/seller/items/{item_id}/process", self.seller)
        self._post(f"/api/seller/items/{item_id}/request-pickup", self.seller)
        seller_lines = self._get("/api/seller/items?status=awaiting_pickup", self.seller)["items"]
        self.assertEqual([i["id"] for i in seller_lines], [item_id])

        board = self._get("/api/shipper/pickups", self.courier)["items"]
        self.assertEqual([i["id"] for i in board], [item_id])

        self._post(f"/api/shipper/items/{item_id}/confirm-pickup", self.courier, {"photos": ["pickup.jpg"]})
        self._post(f"/api/shipper/items/{item_id}/dispatch", self.courier)
        carrying = self._get("/api/shipper/items?status=OUT_FOR_DELIVERY&mine=1", self.courier)["items"]
        self.assertEqual([i["id"] for i in carrying], [item_id])

        delivered = self._post(f"/api/shipper/items/{item_id}/confirm-delivery", self.courier, {"photos": ["door.jpg"]})
        self.assertEqual(delivered["item"]["status"], "DELIVERED")
        self.assertEqual(delivered["item"]["escrow"]["status"], "HOLDING")
        self.assertEqual(delivered["proof"]["photos"], ["door.jpg"])

        queue = self._get("/api/admin/escrow/awaiting-release", self.admin)
        self.assertEqual(queue["total"], 1)
        row = queue["items"][0]
        self.assertEqual(row["order_item_id"], item_id)

        released = self._post(
            f"/api/admin/escrow/{row['transaction_id']}/release",
            self.admin,
            {"version": row["version"]},
        )
        self.assertEqual(released["transaction"]["status"], "RELEASED")
        self.assertEqual(released["transaction"]["seller_payout"], 9000.0)

        again = self.client.post(
            f"/api/admin/escrow/{row['transaction_id']}/release",
            json={},
            headers=self.auth_headers(self.admin),
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.get_json()["error"], "ALREADY_RELEASED")

        detail = self._get(f"/api/orders/{order['id']}", self.buyer)["order"]
        self.assertEqual(detail["status"], "DELIVERED")
        self.assertEqual(detail["escrow_status"], "RELEASED")

        history = self._get(f"/api/admin/order-items/{item_id}/history", self.admin)
        self.assertEqual(len(history["item"]), 6)
        self.assertEqual(history["escrow"][-1]["to_status"], "RELEASED")

    def test_role_gates(self):
        listing = make_listing(self.seller)
        order = self.place_order(listing)
        item_id = int(order.items[0].id)

        res = self.client.get("/api/admin/escrow/awaiting-release", headers=self.auth_headers(self.seller))
        self.assertEqual(res.status_code, 403)
        res = self.client.post(f"/api/seller/items/{item_id}/process", headers=self.auth_headers(self.courier))
        self.assertEqual(res.status_code, 403)
        res = self.client.get("/api/shipper/pickups", headers=self.auth_headers(self.buyer))
        self.assertEqual(res.status_code, 403)
        res = self.client.get(f"/api/orders/{order.id}", headers=self.auth_headers(self.courier))
        self.assertEqual(res.status_code, 403)

    def test_cancel_line_and_admin_refund_over_http(self):
        order = self.place_order(make_listing(self.seller), make_listing(self.other_seller))
        first_id, second_id = [int(i.id) for i in order.items]

        cancelled = self._post(f"/api/order-items/{first_id}/cancel", self.buyer, {"reason": "duplicate"})
        self.assertEqual(cancelled["item"]["status"], "CANCELLED")
        self.assertEqual(cancelled["order_status"], "PENDING")

        tx = self._get(f"/api/orders/{order.id}", self.buyer)["order"]["sellers"][1]["items"][0]["escrow"]["transaction_id"]
        refunded = self._post(f"/api/admin/escrow/{tx}/refund", self.admin, {"reason": "seller unreachable"})
        self.assertEqual(refunded["transaction"]["status"], "REFUNDED")

        detail = self._get(f"/api/orders/{order.id}", self.buyer)["order"]
        self.assertEqual(detail["status"], "REFUNDED")
        self.assertEqual(second_id, refunded["transaction"]["order_item_id"])

    def test_card_checkout_carries_payment_reference(self):
        listing = make_listing(self.seller)
        body = {"shippingAddressId": self.address.id, "items": [{"productId": listing.id}], "paymentMethod": "STRIPE_CARD"}

        missing = self.client.post("/api/orders", json=body, headers=self.auth_headers(self.buyer))
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.get_json()["error"], "VALIDATION_ERROR")

        created = self._post("/api/orders", self.buyer, {**body, "paymentReference": "hosted-checkout-77"})
        self.assertEqual(created["order"]["payment_reference"], "mock-capture-hosted-checkout-77")
        self.assertEqual(self.payments.instructions_of("capture")[0]["reference"], "hosted-checkout-77")


if __name__ == "__main__":
    unittest.main()
