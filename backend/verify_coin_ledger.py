from unittest import mock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.core.database import Base
from storefront.core.errors import InsufficientFunds, SignatureMismatch
from storefront.core.settings import settings
from storefront.models.coin_account import CoinAccount  # noqa: F401
from storefront.models.coin_transaction import CoinTransaction
from storefront.models.payment_transaction import PaymentTransaction
from storefront.services.coin_ledger import credit_coins, get_balance, spend_coins
from storefront.services.duitku import callback_signature
from storefront.services.payments import handle_callback


def main() -> None:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        user_id = "user-1"
        credit_coins(db, user_id, 1, "Welcome bonus")
        try:
            spend_coins(db, user_id, 2, "Generate image")
            raise AssertionError("spend above balance must fail")
        except InsufficientFunds:
            pass
        bal = get_balance(db, user_id)
        assert bal == 1, bal

        db.add(
            PaymentTransaction(
                user_id=user_id,
                merchant_order_id="AIDUTP1",
                coin_amount=10,
                amount=10000,
                status="pending",
            )
        )
        db.commit()

        with mock.patch.object(settings, "duitku_api_key", "verify-key"):
            payload = {
                "merchantCode": "D0001",
                "amount": "10000",
                "merchantOrderId": "AIDUTP1",
                "resultCode": "00",
                "signature": "0" * 32,
            }
            try:
                handle_callback(db, payload)
                raise AssertionError("tampered callback must fail")
            except SignatureMismatch:
                pass
            assert get_balance(db, user_id) == 1

            payload["signature"] = callback_signature("D0001", "10000", "AIDUTP1", "verify-key")
            first = handle_callback(db, payload)
            second = handle_callback(db, payload)
            assert first.credited and not first.already_processed, first
            assert second.already_processed and not second.credited, second

        bal2 = get_balance(db, user_id)
        assert bal2 == 11, bal2

        spend_coins(db, user_id, 11, "Generate video")
        bal3 = get_balance(db, user_id)
        assert bal3 == 0, bal3

        rows = db.query(CoinTransaction).filter(CoinTransaction.user_id == user_id).all()
        assert sum(1 for r in rows if r.reference == "duitku:AIDUTP1") == 1
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")
