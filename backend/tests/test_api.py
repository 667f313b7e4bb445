import time
import unittest
from unittest import mock

import jwt
from fastapi.testclient import TestClient

from db_support import make_session_factory
from main import app
from storefront.core.database import get_db
from storefront.core.settings import settings
from storefront.models.payment_transaction import PaymentTransaction
from storefront.services import payments
from storefront.services.coin_ledger import credit_coins
from storefront.services.duitku import callback_signature

JWT_SECRET = "test-jwt-secret-for-storefront-api-suite"
API_KEY = "test-api-key"
MERCHANT = "D1234"
DUITKU_IP = "103.10.128.11"


def _token(sub, email, **claims):
    payload = {"sub": sub, "email": email, "exp": int(time.time()) + 3600}
    payload.update(claims)
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = make_session_factory()

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.addCleanup(app.dependency_overrides.clear)

        patcher = mock.patch.multiple(
            settings,
            auth_jwt_secret=JWT_SECRET,
            auth_jwt_audience=None,
            auth_jwt_issuer=None,
            admin_emails={"admin@example.com"},
            duitku_api_key=API_KEY,
            duitku_merchant_code=MERCHANT,
            duitku_sandbox=False,
            duitku_ip_whitelist={DUITKU_IP},
        )
        patcher.start()
        self.addCleanup(patcher.stop)
        payments._IDEMPOTENCY_CACHE.clear()

        self.client = TestClient(app)
        self.user = {"Authorization": f"Bearer {_token('user-1', 'buyer@example.com')}"}
        self.other = {"Authorization": f"Bearer {_token('user-2', 'other@example.com')}"}
        self.admin = {"Authorization": f"Bearer {_token('admin-1', 'admin@example.com')}"}

    def tearDown(self):
        self.engine.dispose()

    def _credit(self, user_id, amount):
        db = self.Session()
        try:
            credit_coins(db, user_id, amount, "Top up")
        finally:
            db.close()


class TestAuth(ApiTestCase):
    def test_health_is_public(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "healthy"})

    def test_missing_token(self):
        resp = self.client.get("/api/me")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["detail"], "Missing bearer token")

    def test_wrong_secret(self):
        bad = jwt.encode({"sub": "x", "exp": int(time.time()) + 60}, "another-secret-that-is-long-enough-x", algorithm="HS256")
        resp = self.client.get("/api/me", headers={"Authorization": f"Bearer {bad}"})
        self.assertEqual(resp.status_code, 401)

    def test_expired_token(self):
        old = jwt.encode({"sub": "x", "exp": int(time.time()) - 60}, JWT_SECRET, algorithm="HS256")
        resp = self.client.get("/api/me", headers={"Authorization": f"Bearer {old}"})
        self.assertEqual(resp.status_code, 401)

    def test_me_creates_profile(self):
        resp = self.client.get("/api/me", headers=self.user)
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["id"], "user-1")
        self.assertEqual(body["role"], "user")
        self.assertEqual(body["coin_balance"], 0)

    def test_admin_email_gets_admin_role(self):
        self.assertEqual(self.client.get("/api/me", headers=self.admin).json()["role"], "admin")


class TestCoinsApi(ApiTestCase):
    def test_spend_without_funds(self):
        resp = self.client.post("/api/coins/spend", json={"amount": 2, "description": "Generate"}, headers=self.user)
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertTrue(body["insufficient_coin"])
        self.assertEqual(body["current_coin"], 0)
        self.assertEqual(body["required_coin"], 2)

    def test_spend_and_summary(self):
        self._credit("user-1", 5)
        resp = self.client.post("/api/coins/spend", json={"amount": 2, "description": "Generate"}, headers=self.user)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["balance"], 3)

        summary = self.client.get("/api/coins/summary", headers=self.user).json()
        self.assertEqual(summary, {"balance": 3, "total_credit": 5, "total_debit": 2})

        listing = self.client.get("/api/coins", headers=self.user).json()
        self.assertEqual(listing["total"], 2)
        self.assertEqual(listing["items"][0]["debit_amount"], 2)

    def test_invalid_amount_is_422(self):
        resp = self.client.post("/api/coins/spend", json={"amount": 0, "description": "x"}, headers=self.user)
        self.assertEqual(resp.status_code, 422)

    def test_reversed_range_is_422(self):
        resp = self.client.get(
            "/api/coins", params={"start_date": "2026-02-01", "end_date": "2026-01-01"}, headers=self.user
        )
        self.assertEqual(resp.status_code, 422)

    def test_export_csv(self):
        self._credit("user-1", 5)
        resp = self.client.get("/api/coins/export", headers=self.user)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.headers["content-type"].startswith("text/csv"))
        self.assertIn("attachment", resp.headers["content-disposition"])
        self.assertTrue(resp.text.startswith("No,Date,Description,Credit,Debit,Status"))

    def test_ai_history_flow(self):
        self._credit("user-1", 3)
        check = self.client.get("/api/ai-history/check-coin", headers=self.user).json()
        self.assertTrue(check["has_enough"])

        created = self.client.post("/api/ai-history", json={"description": "Banner"}, headers=self.user)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["balance"], 1)
        history_id = created.json()["history"]["id"]

        denied = self.client.post("/api/ai-history", json={"description": "Banner 2"}, headers=self.user)
        self.assertEqual(denied.status_code, 400)
        self.assertTrue(denied.json()["insufficient_coin"])

        self.assertEqual(self.client.delete(f"/api/ai-history/{history_id}", headers=self.other).status_code, 404)
        self.assertEqual(self.client.delete(f"/api/ai-history/{history_id}", headers=self.user).status_code, 200)
        self.assertEqual(self.client.get("/api/coins/summary", headers=self.user).json()["balance"], 1)


class TestVouchersApi(ApiTestCase):
    def setUp(self):
        super().setUp()
        resp = self.client.post("/api/stores", json={"name": "Toko Maju", "subdomain": "toko-maju"}, headers=self.user)
        self.assertEqual(resp.status_code, 201)
        self.store_id = resp.json()["id"]
        resp = self.client.post(
            f"/api/stores/{self.store_id}/vouchers",
            json={
                "code": "HEMAT10",
                "quota": 2,
                "start_date": "2020-01-01",
                "end_date": "2099-12-31",
                "discount_kind": "price_cut",
                "discount_type": "percent",
                "discount_value": "10",
                "max_discount": "50000",
            },
            headers=self.user,
        )
        self.assertEqual(resp.status_code, 201)
        self.voucher = resp.json()

    def test_public_validate(self):
        resp = self.client.post(
            f"/api/stores/{self.store_id}/vouchers/validate", json={"code": "hemat10", "subtotal": 1000000}
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["discount"], 50000.0)
        self.assertEqual(body["kind"], "price_cut")
        self.assertEqual(body["type"], "percent")

    def test_validate_unknown_code(self):
        resp = self.client.post(f"/api/stores/{self.store_id}/vouchers/validate", json={"code": "X", "subtotal": 10})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Voucher code not found")

    def test_validate_unknown_store(self):
        resp = self.client.post("/api/stores/missing/vouchers/validate", json={"code": "HEMAT10", "subtotal": 10})
        self.assertEqual(resp.status_code, 404)

    def test_redeem_then_remaining_quota(self):
        resp = self.client.post(
            f"/api/stores/{self.store_id}/vouchers/redeem",
            json={"voucher_id": self.voucher["id"], "subtotal": 100000},
            headers=self.user,
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["discount"], 10000.0)
        shown = self.client.get(f"/api/stores/{self.store_id}/vouchers/{self.voucher['id']}", headers=self.user)
        self.assertEqual(shown.json()["remaining_quota"], 1)

    def test_other_user_cannot_manage(self):
        resp = self.client.get(f"/api/stores/{self.store_id}/vouchers", headers=self.other)
        self.assertEqual(resp.status_code, 403)

    def test_admin_can_manage(self):
        resp = self.client.get(f"/api/stores/{self.store_id}/vouchers", headers=self.admin)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["total"], 1)

    def test_duplicate_subdomain(self):
        resp = self.client.post("/api/stores", json={"name": "Copy", "subdomain": "TOKO-MAJU"}, headers=self.other)
        self.assertEqual(resp.status_code, 422)

    def test_delete(self):
        resp = self.client.delete(f"/api/stores/{self.store_id}/vouchers/{self.voucher['id']}", headers=self.user)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get(f"/api/stores/{self.store_id}/vouchers", headers=self.user).json()["total"], 0)


class TestPaymentsApi(ApiTestCase):
    def _pending(self, order_id="AIDUTP1"):
        db = self.Session()
        try:
            db.add(
                PaymentTransaction(
                    user_id="user-1",
                    merchant_code=MERCHANT,
                    merchant_order_id=order_id,
                    coin_amount=50,
                    amount=50000,
                    status="pending",
                )
            )
            db.commit()
        finally:
            db.close()

    def _form(self, order_id="AIDUTP1", amount="50000", result_code="00", signature=None):
        return {
            "merchantCode": MERCHANT,
            "amount": amount,
            "merchantOrderId": order_id,
            "resultCode": result_code,
            "reference": "DREF1",
            "signature": signature or callback_signature(MERCHANT, amount, order_id, API_KEY),
        }

    def test_form_callback_credits_once(self):
        self._pending()
        self.client.get("/api/me", headers=self.user)
        headers = {"X-Forwarded-For": DUITKU_IP}
        resp = self.client.post("/api/payment/duitku/callback", data=self._form(), headers=headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["success"], True)
        self.assertFalse(resp.json()["already_processed"])

        replay = self.client.post("/api/payment/duitku/callback", data=self._form(), headers=headers)
        self.assertEqual(replay.status_code, 200)
        self.assertTrue(replay.json()["already_processed"])
        self.assertEqual(self.client.get("/api/me", headers=self.user).json()["coin_balance"], 50)

    def test_json_callback(self):
        self._pending()
        resp = self.client.post("/api/payment/duitku/callback", json=self._form(), headers={"X-Forwarded-For": DUITKU_IP})
        self.assertEqual(resp.status_code, 200)

    def test_bad_signature(self):
        self._pending()
        resp = self.client.post(
            "/api/payment/duitku/callback",
            data=self._form(signature="f" * 32),
            headers={"X-Forwarded-For": DUITKU_IP},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Bad Signature")
        status = self.client.get("/api/payment/duitku/transactions", headers=self.user).json()["items"][0]["status"]
        self.assertEqual(status, "pending")

    def test_callback_from_unknown_ip(self):
        self._pending()
        resp = self.client.post("/api/payment/duitku/callback", data=self._form())
        self.assertEqual(resp.status_code, 403)

    def test_create_payment(self):
        gateway = {"statusCode": "00", "reference": "DREF9", "paymentUrl": "https://pay/DREF9"}
        with mock.patch("storefront.services.duitku.requests.post") as post:
            post.return_value = mock.Mock(status_code=200, json=mock.Mock(return_value=gateway))
            resp = self.client.post("/api/payment/duitku/create", json={"coin_amount": 10}, headers=self.user)
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["amount"], 10000)
        self.assertEqual(body["payment_url"], "https://pay/DREF9")
        sent = post.call_args.kwargs["json"]
        self.assertTrue(sent["callbackUrl"].endswith("/api/payment/duitku/callback"))

    def test_gateway_failure_is_502(self):
        with mock.patch("storefront.services.duitku.requests.post") as post:
            post.return_value = mock.Mock(status_code=500, json=mock.Mock(return_value={"Message": "down"}))
            resp = self.client.post("/api/payment/duitku/create", json={"coin_amount": 10}, headers=self.user)
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["detail"], "down")

    def test_status_of_unknown_order(self):
        resp = self.client.get("/api/payment/duitku/status/AIDUTP404", headers=self.user)
        self.assertEqual(resp.status_code, 404)


class TestAdminApi(ApiTestCase):
    def test_non_admin_is_forbidden(self):
        self.assertEqual(self.client.get("/api/admin/stats", headers=self.user).status_code, 403)

    def test_adjust_and_list(self):
        self.client.get("/api/me", headers=self.user)
        resp = self.client.post(
            "/api/admin/users/user-1/coins/adjust", json={"delta": 7, "reason": "goodwill"}, headers=self.admin
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["balance"], 7)

        users = {u["id"]: u for u in self.client.get("/api/admin/users", headers=self.admin).json()}
        self.assertEqual(users["user-1"]["coin_balance"], 7)

        stats = self.client.get("/api/admin/stats", headers=self.admin).json()
        self.assertEqual(stats["coins_credited"], 7)

    def test_adjust_unknown_user(self):
        resp = self.client.post("/api/admin/users/ghost/coins/adjust", json={"delta": 1}, headers=self.admin)
        self.assertEqual(resp.status_code, 404)


if __name__ == "__main__":
    unittest.main()
