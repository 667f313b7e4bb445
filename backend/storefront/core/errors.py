from __future__ import annotations

from typing import Any


class StorefrontError(RuntimeError):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None, **extra: Any) -> None:
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_content(self) -> dict[str, Any]:
        return {"detail": self.detail, **self.extra}


class ValidationFailed(StorefrontError):
    status_code = 422
    default_detail = "Validation error"


class NotFound(StorefrontError):
    status_code = 404
    default_detail = "Not found"


class Forbidden(StorefrontError):
    status_code = 403
    default_detail = "Forbidden"


class InsufficientFunds(StorefrontError):
    status_code = 400
    default_detail = "Insufficient funds"

    def __init__(self, balance: int, required: int) -> None:
        super().__init__(
            f"Insufficient funds: balance {balance}, required {required}",
            current_coin=int(balance),
            required_coin=int(required),
            insufficient_coin=True,
        )
        self.balance = int(balance)
        self.required = int(required)


class VoucherInvalid(StorefrontError):
    status_code = 400
    default_detail = "Voucher is not valid"


class BelowMinimumPurchase(VoucherInvalid):
    default_detail = "Subtotal is below the voucher minimum purchase"


class SignatureMismatch(StorefrontError):
    status_code = 400
    default_detail = "Bad Signature"


class AmountMismatch(StorefrontError):
    status_code = 400
    default_detail = "Amount mismatch"


class TooManyPending(StorefrontError):
    status_code = 429
    default_detail = "Too many pending transactions"


class GatewayError(StorefrontError):
    status_code = 502
    default_detail = "Payment gateway error"
