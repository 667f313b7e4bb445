import unittest
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError

from db_support import make_session_factory
from storefront.core.errors import InsufficientFunds, NotFound, ValidationFailed
from storefront.models.coin_account import CoinAccount
from storefront.models.coin_transaction import CoinTransaction
from storefront.models.generation_history import GenerationHistory
from storefront.services.coin_ledger import (
    adjust_coins,
    credit_coins,
    export_transactions_csv,
    get_balance,
    get_summary,
    list_transactions,
    spend_coins,
)
from storefront.services.generation_history import check_coin, delete_history, list_history, record_generation


def _add_row(db, user_id, description, credit=0, debit=0, status="success", created_at=None):
    row = CoinTransaction(
        user_id=user_id,
        description=description,
        credit_amount=credit,
        debit_amount=debit,
        status=status,
        created_at=created_at,
    )
    db.add(row)
    db.commit()
    return row


class TestCoinBalance(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_empty_ledger_has_zero_balance(self):
        summary = get_summary(self.db, "u1")
        self.assertEqual((summary.balance, summary.total_credit, summary.total_debit), (0, 0, 0))

    def test_balance_is_credits_minus_debits(self):
        credit_coins(self.db, "u1", 10, "Top up")
        spend_coins(self.db, "u1", 4, "Generate image")
        summary = get_summary(self.db, "u1")
        self.assertEqual(summary.balance, 6)
        self.assertEqual(summary.total_credit, 10)
        self.assertEqual(summary.total_debit, 4)

    def test_only_successful_rows_count(self):
        _add_row(self.db, "u1", "Settled", credit=5)
        _add_row(self.db, "u1", "Waiting", credit=100, status="pending")
        _add_row(self.db, "u1", "Broken", credit=100, status="failed")
        self.assertEqual(get_balance(self.db, "u1"), 5)

    def test_balances_are_per_user(self):
        credit_coins(self.db, "u1", 3, "Top up")
        credit_coins(self.db, "u2", 7, "Top up")
        self.assertEqual(get_balance(self.db, "u1"), 3)
        self.assertEqual(get_balance(self.db, "u2"), 7)

    def test_coin_account_is_only_a_spend_lock(self):
        credit_coins(self.db, "u1", 10, "Top up")
        self.assertEqual(self.db.query(CoinAccount).count(), 0)
        result = spend_coins(self.db, "u1", 2, "Generate image")
        self.assertEqual(result.balance, 8)
        self.assertEqual(self.db.query(CoinAccount).filter(CoinAccount.user_id == "u1").count(), 1)
        self.assertFalse(hasattr(CoinAccount, "balance"))

    def test_non_positive_amounts_rejected(self):
        with self.assertRaises(ValidationFailed):
            credit_coins(self.db, "u1", 0, "Nothing")
        with self.assertRaises(ValidationFailed):
            spend_coins(self.db, "u1", -1, "Nothing")

    def test_duplicate_reference_is_rejected(self):
        credit_coins(self.db, "u1", 10, "Top up", reference="duitku:ORDER1")
        with self.assertRaises(IntegrityError):
            credit_coins(self.db, "u1", 10, "Top up again", reference="duitku:ORDER1")
        self.assertEqual(get_balance(self.db, "u1"), 10)


class TestSpendCoins(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_spend_more_than_balance_writes_nothing(self):
        credit_coins(self.db, "u1", 1, "Top up")
        with self.assertRaises(InsufficientFunds) as ctx:
            spend_coins(self.db, "u1", 2, "Generate image")
        self.assertEqual(ctx.exception.balance, 1)
        self.assertEqual(ctx.exception.required, 2)
        content = ctx.exception.to_content()
        self.assertTrue(content["insufficient_coin"])
        self.assertEqual(content["current_coin"], 1)
        self.assertEqual(content["required_coin"], 2)

        debits = self.db.query(CoinTransaction).filter(CoinTransaction.debit_amount > 0).count()
        self.assertEqual(debits, 0)
        self.assertEqual(get_balance(self.db, "u1"), 1)

    def test_spend_exact_balance_reaches_zero(self):
        credit_coins(self.db, "u1", 2, "Top up")
        result = spend_coins(self.db, "u1", 2, "Generate image")
        self.assertEqual(result.balance, 0)
        self.assertEqual(result.transaction.debit_amount, 2)

    def test_failing_side_effect_rolls_back_debit(self):
        credit_coins(self.db, "u1", 5, "Top up")

        def boom(_debit):
            raise RuntimeError("history write failed")

        with self.assertRaises(RuntimeError):
            spend_coins(self.db, "u1", 2, "Generate image", side_effects=boom)
        self.assertEqual(get_balance(self.db, "u1"), 5)
        self.assertEqual(self.db.query(CoinTransaction).filter(CoinTransaction.debit_amount > 0).count(), 0)

    def test_adjust_coins_both_directions(self):
        self.assertEqual(adjust_coins(self.db, "u1", 10, "welcome bonus"), 10)
        self.assertEqual(adjust_coins(self.db, "u1", -4, "refund correction"), 6)
        descriptions = {r.description for r in self.db.query(CoinTransaction).all()}
        self.assertIn("Admin adjustment - welcome bonus", descriptions)
        with self.assertRaises(ValidationFailed):
            adjust_coins(self.db, "u1", 0)
        with self.assertRaises(InsufficientFunds):
            adjust_coins(self.db, "u1", -100)


class TestTransactionListing(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()
        _add_row(self.db, "u1", "Top Up via Duitku - A", credit=10, created_at=datetime(2026, 1, 5, 10, 30))
        _add_row(self.db, "u1", "Generate banner", debit=2, created_at=datetime(2026, 2, 10, 8, 0))
        _add_row(self.db, "u1", "100%_off promo", credit=1, created_at=datetime(2026, 2, 11, 9, 0))
        _add_row(self.db, "u2", "Other user", credit=50, created_at=datetime(2026, 1, 6, 9, 0))

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_newest_first_for_user(self):
        rows, total = list_transactions(self.db, "u1")
        self.assertEqual(total, 3)
        self.assertEqual([r.description for r in rows][0], "100%_off promo")

    def test_date_range_is_inclusive(self):
        rows, total = list_transactions(self.db, "u1", start=date(2026, 1, 1), end=date(2026, 1, 5))
        self.assertEqual(total, 1)
        self.assertEqual(rows[0].description, "Top Up via Duitku - A")

    def test_summary_over_range(self):
        summary = get_summary(self.db, "u1", start=date(2026, 2, 1), end=date(2026, 2, 28))
        self.assertEqual(summary.total_credit, 1)
        self.assertEqual(summary.total_debit, 2)
        self.assertEqual(summary.balance, -1)

    def test_search_treats_wildcards_literally(self):
        rows, total = list_transactions(self.db, "u1", search="%_off")
        self.assertEqual(total, 1)
        self.assertEqual(rows[0].description, "100%_off promo")
        _, total = list_transactions(self.db, "u1", search="duitku")
        self.assertEqual(total, 1)

    def test_pagination(self):
        rows, total = list_transactions(self.db, "u1", limit=1, offset=1)
        self.assertEqual(total, 3)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].description, "Generate banner")

    def test_csv_export(self):
        text = export_transactions_csv(self.db, "u1", start=date(2026, 1, 1), end=date(2026, 1, 31))
        lines = text.strip().splitlines()
        self.assertEqual(lines[0], "No,Date,Description,Credit,Debit,Status")
        self.assertEqual(lines[1], "1,05/01/2026 10:30,Top Up via Duitku - A,10,0,success")
        self.assertEqual(len(lines), 2)


class TestGenerationHistory(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_check_coin(self):
        credit_coins(self.db, "u1", 1, "Top up")
        result = check_coin(self.db, "u1", required=2)
        self.assertEqual(result, {"current_coin": 1, "required_coin": 2, "has_enough": False})

    def test_record_generation_debits_and_links_history(self):
        credit_coins(self.db, "u1", 5, "Top up")
        history, balance = record_generation(self.db, "u1", "Product photo", result_url="https://cdn/x.png", coin_used=2)
        self.assertEqual(balance, 3)
        debit = self.db.query(CoinTransaction).filter(CoinTransaction.id == history.coin_transaction_id).one()
        self.assertEqual(debit.debit_amount, 2)
        self.assertEqual(debit.description, "Product photo")

    def test_record_generation_without_funds_leaves_no_history(self):
        credit_coins(self.db, "u1", 1, "Top up")
        with self.assertRaises(InsufficientFunds):
            record_generation(self.db, "u1", "Product photo", coin_used=2)
        self.assertEqual(self.db.query(GenerationHistory).count(), 0)
        self.assertEqual(get_balance(self.db, "u1"), 1)

    def test_delete_history_keeps_the_debit(self):
        credit_coins(self.db, "u1", 5, "Top up")
        history, _ = record_generation(self.db, "u1", "Product photo", coin_used=2)
        delete_history(self.db, "u1", history.id)
        rows, total = list_history(self.db, "u1")
        self.assertEqual(total, 0)
        self.assertEqual(get_balance(self.db, "u1"), 3)

    def test_delete_history_of_other_user(self):
        credit_coins(self.db, "u1", 5, "Top up")
        history, _ = record_generation(self.db, "u1", "Product photo", coin_used=2)
        with self.assertRaises(NotFound):
            delete_history(self.db, "u2", history.id)


if __name__ == "__main__":
    unittest.main()
