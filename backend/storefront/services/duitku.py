from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import Any

import requests

from storefront.core.errors import GatewayError
from storefront.core.settings import settings

logger = logging.getLogger(__name__)


class DuitkuError(GatewayError):
    pass


def _md5(raw: str) -> str:
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def inquiry_signature(merchant_code: str, merchant_order_id: str, amount: int, api_key: str) -> str:
    return _md5(f"{merchant_code}{merchant_order_id}{amount}{api_key}")


def status_signature(merchant_code: str, merchant_order_id: str, api_key: str) -> str:
    return _md5(f"{merchant_code}{merchant_order_id}{api_key}")


def callback_signature(merchant_code: str, amount: str | int, merchant_order_id: str, api_key: str) -> str:
    return _md5(f"{merchant_code}{amount}{merchant_order_id}{api_key}")


def payment_method_signature(merchant_code: str, amount: int, at: str, api_key: str) -> str:
    return hashlib.sha256(f"{merchant_code}{amount}{at}{api_key}".encode("utf-8")).hexdigest()


class DuitkuClient:
    def __init__(
        self,
        *,
        merchant_code: str | None,
        api_key: str | None,
        base_url: str,
        timeout_s: float = 30.0,
    ) -> None:
        self._merchant_code = (merchant_code or "").strip()
        self._api_key = (api_key or "").strip()
        self._base_url = (base_url or "").rstrip("/")
        self._timeout_s = max(1.0, float(timeout_s or 30.0))

    @classmethod
    def from_settings(cls) -> "DuitkuClient":
        return cls(
            merchant_code=settings.duitku_merchant_code,
            api_key=settings.duitku_api_key,
            base_url=settings.duitku_base_url,
            timeout_s=settings.duitku_timeout_s,
        )

    @property
    def merchant_code(self) -> str:
        return self._merchant_code

    def _require_config(self) -> None:
        if not self._merchant_code:
            raise DuitkuError("DUITKU_MERCHANT_CODE is not configured")
        if not self._api_key:
            raise DuitkuError("DUITKU_API_KEY is not configured")

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self._require_config()
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            resp = requests.post(
                url,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                json=payload,
                timeout=self._timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("duitku.request.failed path=%s error=%s", path, e)
            raise DuitkuError(f"Duitku request failed: {e}")

        if resp.status_code >= 400:
            message = ""
            try:
                body = resp.json() or {}
                message = str(body.get("Message") or body.get("statusMessage") or "")
            except ValueError:
                message = resp.text[:200]
            logger.warning("duitku.request.error path=%s status=%s message=%s", path, resp.status_code, message)
            raise DuitkuError(message or f"Duitku error ({resp.status_code})")

        try:
            data = resp.json()
        except ValueError:
            raise DuitkuError("Duitku returned invalid JSON")
        return data if isinstance(data, dict) else {}

    def inquiry(
        self,
        *,
        merchant_order_id: str,
        amount: int,
        coin_amount: int,
        payment_method: str,
        email: str,
        customer_name: str,
        callback_url: str,
        return_url: str,
        phone_number: str = "",
        expiry_minutes: int = 60,
    ) -> dict[str, Any]:
        self._require_config()
        product = f"Top Up {coin_amount} Coin"
        payload = {
            "merchantCode": self._merchant_code,
            "paymentAmount": int(amount),
            "paymentMethod": payment_method,
            "merchantOrderId": merchant_order_id,
            "productDetails": product,
            "email": email,
            "phoneNumber": phone_number,
            "additionalParam": "",
            "merchantUserInfo": email,
            "customerVaName": (customer_name or "User")[:20],
            "callbackUrl": callback_url,
            "returnUrl": return_url,
            "signature": inquiry_signature(self._merchant_code, merchant_order_id, int(amount), self._api_key),
            "expiryPeriod": int(expiry_minutes),
            "itemDetails": [{"name": product, "price": int(amount), "quantity": 1}],
            "customerDetail": {
                "firstName": customer_name or "User",
                "lastName": "",
                "email": email,
                "phoneNumber": phone_number,
            },
        }
        return self._post("v2/inquiry", payload)

    def transaction_status(self, merchant_order_id: str) -> dict[str, Any]:
        self._require_config()
        return self._post(
            "transactionStatus",
            {
                "merchantCode": self._merchant_code,
                "merchantOrderId": merchant_order_id,
                "signature": status_signature(self._merchant_code, merchant_order_id, self._api_key),
            },
        )

    def payment_methods(self, amount: int, at: datetime | None = None) -> list[dict[str, Any]]:
        self._require_config()
        stamp = (at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        data = self._post(
            "paymentmethod/getpaymentmethod",
            {
                "merchantcode": self._merchant_code,
                "amount": int(amount),
                "datetime": stamp,
                "signature": payment_method_signature(self._merchant_code, int(amount), stamp, self._api_key),
            },
        )
        fees = data.get("paymentFee") or []
        return [f for f in fees if isinstance(f, dict)]
