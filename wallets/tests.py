import random
import threading
import uuid
from datetime import timedelta
from unittest.mock import patch

from django.db import IntegrityError, connections, transaction
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from wallets.exceptions import DuplicateCharge, InsufficientFunds
from wallets.models import Transaction, Wallet
from wallets.services import LedgerService

CREDIT = Transaction.TransactionType.CREDIT
DEBIT = Transaction.TransactionType.DEBIT


def credit(wallet, amount):
    return LedgerService.apply_transaction(
        wallet.uuid, CREDIT, amount, Transaction.Purpose.RECHARGE, uuid.uuid4()
    )


def debit(wallet, amount, reference_id=None):
    return LedgerService.apply_transaction(
        wallet.uuid,
        DEBIT,
        amount,
        Transaction.Purpose.CHAT_SESSION,
        reference_id or uuid.uuid4(),
    )


# ============================================================
# Model Tests
# ============================================================


class WalletModelTest(TestCase):
    def test_create_wallet(self):
        wallet = Wallet.objects.create(owner_id="user-1")
        self.assertIsNotNone(wallet.uuid)
        self.assertEqual(wallet.balance, 0)
        self.assertIsNotNone(wallet.created_at)

    def test_wallet_str(self):
        wallet = Wallet.objects.create(owner_id="user-1")
        self.assertIn(str(wallet.uuid), str(wallet))

    def test_one_wallet_per_owner(self):
        Wallet.objects.create(owner_id="user-1")
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Wallet.objects.create(owner_id="user-1")

    def test_balance_cannot_go_negative(self):
        wallet = Wallet.objects.create(owner_id="user-1")
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Wallet.objects.filter(pk=wallet.pk).update(balance=-1)


class TransactionModelTest(TestCase):
    def setUp(self):
        self.wallet = Wallet.objects.create(owner_id="user-1")

    def test_transactions_are_immutable(self):
        tx = credit(self.wallet, 500)
        tx.amount = 1
        with self.assertRaises(ValueError):
            tx.save()
        with self.assertRaises(ValueError):
            tx.delete()

    def test_signed_amount(self):
        credit(self.wallet, 500)
        tx = debit(self.wallet, 200)
        self.assertEqual(tx.signed_amount, -200)

    def test_transaction_str(self):
        tx = credit(self.wallet, 500)
        self.assertIn("CREDIT", str(tx))
        self.assertIn("500", str(tx))

    def test_one_debit_per_reference(self):
        reference_id = uuid.uuid4()
        Transaction.objects.create(
            wallet=self.wallet,
            transaction_type=DEBIT,
            amount=10,
            purpose=Transaction.Purpose.CHAT_SESSION,
            reference_id=reference_id,
            balance_after=0,
        )
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Transaction.objects.create(
                    wallet=self.wallet,
                    transaction_type=DEBIT,
                    amount=10,
                    purpose=Transaction.Purpose.CHAT_SESSION,
                    reference_id=reference_id,
                    balance_after=0,
                )


# ============================================================
# Service Tests
# ============================================================


class LedgerServiceTest(TestCase):
    def setUp(self):
        self.wallet, _ = LedgerService.get_or_create_wallet("user-1")

    def test_wallet_created_once(self):
        wallet, created = LedgerService.get_or_create_wallet("user-1")
        self.assertFalse(created)
        self.assertEqual(wallet.pk, self.wallet.pk)
        self.assertEqual(wallet.balance, 0)

    def test_credit(self):
        tx = credit(self.wallet, 1000)

        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 1000)
        self.assertEqual(tx.transaction_type, CREDIT)
        self.assertEqual(tx.balance_after, 1000)

    def test_debit_success(self):
        credit(self.wallet, 200)
        reference_id = uuid.uuid4()

        tx = debit(self.wallet, 150, reference_id)

        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 50)
        self.assertEqual(tx.amount, 150)
        self.assertEqual(tx.reference_id, reference_id)
        self.assertEqual(tx.balance_after, 50)

    def test_debit_insufficient_balance(self):
        credit(self.wallet, 100)

        with self.assertRaises(InsufficientFunds):
            debit(self.wallet, 150)

        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 100)
        self.assertFalse(
            Transaction.objects.filter(wallet=self.wallet, transaction_type=DEBIT).exists()
        )

    def test_second_debit_of_exact_balance_fails(self):
        credit(self.wallet, 150)

        debit(self.wallet, 150)
        with self.assertRaises(InsufficientFunds):
            debit(self.wallet, 150)

        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 0)
        self.assertEqual(
            Transaction.objects.filter(wallet=self.wallet, transaction_type=DEBIT).count(), 1
        )

    def test_debit_same_reference_is_not_charged_twice(self):
        credit(self.wallet, 1000)
        reference_id = uuid.uuid4()

        tx1 = debit(self.wallet, 300, reference_id)
        tx2 = debit(self.wallet, 300, reference_id)

        self.assertEqual(tx1.id, tx2.id)
        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 700)

    def test_debit_same_reference_different_amount_raises(self):
        credit(self.wallet, 1000)
        reference_id = uuid.uuid4()
        debit(self.wallet, 300, reference_id)

        with self.assertRaises(DuplicateCharge):
            debit(self.wallet, 400, reference_id)

        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 700)

    def test_debit_same_reference_different_purpose_raises(self):
        credit(self.wallet, 1000)
        reference_id = uuid.uuid4()
        debit(self.wallet, 300, reference_id)

        with self.assertRaises(DuplicateCharge):
            LedgerService.apply_transaction(
                self.wallet.uuid, DEBIT, 300, Transaction.Purpose.SUBSCRIPTION, reference_id
            )

        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 700)

    def test_zero_and_negative_amounts_raise(self):
        with self.assertRaises(ValueError):
            credit(self.wallet, 0)
        with self.assertRaises(ValueError):
            credit(self.wallet, -100)

    def test_unknown_type_raises(self):
        with self.assertRaises(ValueError):
            LedgerService.apply_transaction(
                self.wallet.uuid, "REFUND", 10, Transaction.Purpose.RECHARGE, uuid.uuid4()
            )

    def test_nonexistent_wallet_raises(self):
        with self.assertRaises(Wallet.DoesNotExist):
            LedgerService.apply_transaction(
                uuid.uuid4(), CREDIT, 10, Transaction.Purpose.RECHARGE, uuid.uuid4()
            )

    def test_recharge_idempotency(self):
        key = uuid.uuid4()

        tx1 = LedgerService.recharge(self.wallet.uuid, 1000, idempotency_key=key)
        tx2 = LedgerService.recharge(self.wallet.uuid, 1000, idempotency_key=key)

        self.assertEqual(tx1.id, tx2.id)
        self.assertEqual(tx1.purpose, Transaction.Purpose.RECHARGE)
        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 1000)

    def test_recharge_idempotency_conflict_raises(self):
        key = uuid.uuid4()
        LedgerService.recharge(self.wallet.uuid, 1000, idempotency_key=key)

        with self.assertRaises(DuplicateCharge):
            LedgerService.recharge(self.wallet.uuid, 2000, idempotency_key=key)

        self.assertEqual(LedgerService.get_balance(self.wallet.uuid), 1000)

    def test_balance_matches_ledger_after_mixed_operations(self):
        rng = random.Random(7)
        credits = debits = 0

        for _ in range(60):
            amount = rng.randint(1, 500)
            if rng.random() < 0.5:
                credit(self.wallet, amount)
                credits += amount
            else:
                try:
                    debit(self.wallet, amount)
                    debits += amount
                except InsufficientFunds:
                    pass
            self.assertGreaterEqual(LedgerService.get_balance(self.wallet.uuid), 0)

        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, credits - debits)
        self.assertEqual(LedgerService.compute_balance(self.wallet), self.wallet.balance)
        self.assertEqual(LedgerService.find_divergent_wallets(), [])

    def test_list_transactions_pages_most_recent_first(self):
        txs = [credit(self.wallet, amount) for amount in (10, 20, 30, 40, 50)]

        page1 = LedgerService.list_transactions(self.wallet.uuid, limit=2)
        page2 = LedgerService.list_transactions(
            self.wallet.uuid, limit=2, cursor=page1.next_cursor
        )
        page3 = LedgerService.list_transactions(
            self.wallet.uuid, limit=2, cursor=page2.next_cursor
        )

        self.assertEqual([t.id for t in page1.items], [txs[4].id, txs[3].id])
        self.assertEqual([t.id for t in page2.items], [txs[2].id, txs[1].id])
        self.assertEqual([t.id for t in page3.items], [txs[0].id])
        self.assertIsNone(page3.next_cursor)

    def test_list_transactions_time_range(self):
        t0 = timezone.now()
        with patch("django.utils.timezone.now", return_value=t0 - timedelta(days=2)):
            old = credit(self.wallet, 10)
        recent = credit(self.wallet, 20)

        since = LedgerService.list_transactions(
            self.wallet.uuid, created_after=t0 - timedelta(days=1)
        )
        until = LedgerService.list_transactions(
            self.wallet.uuid, created_before=t0 - timedelta(days=1)
        )

        self.assertEqual([t.id for t in since.items], [recent.id])
        self.assertEqual([t.id for t in until.items], [old.id])

    def test_list_transactions_invalid_cursor(self):
        with self.assertRaises(ValueError):
            LedgerService.list_transactions(self.wallet.uuid, cursor="abc")

    def test_find_divergent_wallets(self):
        credit(self.wallet, 100)
        other, _ = LedgerService.get_or_create_wallet("user-2")
        Wallet.objects.filter(pk=self.wallet.pk).update(balance=999)

        divergent = LedgerService.find_divergent_wallets()

        self.assertEqual([w.pk for w in divergent], [self.wallet.pk])


class ConcurrentDebitTest(TransactionTestCase):
    def test_two_concurrent_debits_of_whole_balance(self):
        wallet, _ = LedgerService.get_or_create_wallet("user-1")
        credit(wallet, 150)

        barrier = threading.Barrier(2)
        outcomes = []

        def attempt():
            barrier.wait()
            try:
                debit(wallet, 150)
                outcomes.append("ok")
            except InsufficientFunds:
                outcomes.append("insufficient")
            finally:
                connections.close_all()

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(outcomes), ["insufficient", "ok"])
        self.assertEqual(LedgerService.get_balance(wallet.uuid), 0)


# ============================================================
# API Tests
# ============================================================


class WalletAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.client.credentials(HTTP_X_USER_ID="user-1")

    def test_create_wallet(self):
        response = self.client.post("/wallets/", format="json")
        self.assertEqual(response.status_code, 201)
        self.assertIn("uuid", response.data)
        self.assertEqual(response.data["balance"], 0)

        response = self.client.post("/wallets/", format="json")
        self.assertEqual(response.status_code, 200)

    def test_missing_principal(self):
        response = APIClient().post("/wallets/", format="json")
        self.assertEqual(response.status_code, 401)

    def test_retrieve_wallet(self):
        wallet, _ = LedgerService.get_or_create_wallet("user-1")
        response = self.client.get(f"/wallets/{wallet.uuid}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["uuid"], str(wallet.uuid))

    def test_retrieve_someone_elses_wallet(self):
        wallet, _ = LedgerService.get_or_create_wallet("user-2")
        response = self.client.get(f"/wallets/{wallet.uuid}/")
        self.assertEqual(response.status_code, 404)


class RechargeAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.client.credentials(HTTP_X_USER_ID="user-1")
        self.wallet, _ = LedgerService.get_or_create_wallet("user-1")

    def test_recharge_success(self):
        response = self.client.post(
            f"/wallets/{self.wallet.uuid}/recharge",
            {"amount": 500},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["wallet"]["balance"], 500)
        self.assertEqual(response.data["transaction"]["amount"], 500)
        self.assertEqual(response.data["transaction"]["transaction_type"], "CREDIT")
        self.assertEqual(response.data["transaction"]["purpose"], "RECHARGE")

    def test_recharge_with_idempotency_key(self):
        key = str(uuid.uuid4())
        response1 = self.client.post(
            f"/wallets/{self.wallet.uuid}/recharge",
            {"amount": 500},
            format="json",
            HTTP_IDEMPOTENCY_KEY=key,
        )
        response2 = self.client.post(
            f"/wallets/{self.wallet.uuid}/recharge",
            {"amount": 500},
            format="json",
            HTTP_IDEMPOTENCY_KEY=key,
        )
        self.assertEqual(response2.status_code, 200)
        self.assertEqual(
            response1.data["transaction"]["id"], response2.data["transaction"]["id"]
        )
        self.assertEqual(response2.data["wallet"]["balance"], 500)

    def test_recharge_malformed_idempotency_key(self):
        response = self.client.post(
            f"/wallets/{self.wallet.uuid}/recharge",
            {"amount": 500},
            format="json",
            HTTP_IDEMPOTENCY_KEY="not-a-uuid",
        )
        self.assertEqual(response.status_code, 400)

    def test_recharge_zero_amount(self):
        response = self.client.post(
            f"/wallets/{self.wallet.uuid}/recharge", {"amount": 0}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    @override_settings(RECHARGE_MAX_AMOUNT=1000)
    def test_recharge_above_limit(self):
        response = self.client.post(
            f"/wallets/{self.wallet.uuid}/recharge", {"amount": 1001}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_recharge_someone_elses_wallet(self):
        other, _ = LedgerService.get_or_create_wallet("user-2")
        response = self.client.post(
            f"/wallets/{other.uuid}/recharge", {"amount": 500}, format="json"
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(LedgerService.get_balance(other.uuid), 0)


class TransactionAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.client.credentials(HTTP_X_USER_ID="user-1")
        self.wallet, _ = LedgerService.get_or_create_wallet("user-1")
        credit(self.wallet, 1000)
        credit(self.wallet, 500)
        debit(self.wallet, 300)

    def test_list_transactions(self):
        response = self.client.get(f"/wallets/{self.wallet.uuid}/transactions/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data["results"]), 3)
        self.assertEqual(response.data["results"][0]["transaction_type"], "DEBIT")
        self.assertIsNone(response.data["next_cursor"])

    def test_list_transactions_with_cursor(self):
        response = self.client.get(f"/wallets/{self.wallet.uuid}/transactions/?limit=2")
        self.assertEqual(len(response.data["results"]), 2)

        cursor = response.data["next_cursor"]
        response = self.client.get(
            f"/wallets/{self.wallet.uuid}/transactions/?limit=2&cursor={cursor}"
        )
        self.assertEqual(len(response.data["results"]), 1)
        self.assertEqual(response.data["results"][0]["amount"], 1000)

    def test_filter_by_type(self):
        response = self.client.get(f"/wallets/{self.wallet.uuid}/transactions/?type=credit")
        self.assertEqual(len(response.data["results"]), 2)

    def test_filter_by_purpose(self):
        response = self.client.get(
            f"/wallets/{self.wallet.uuid}/transactions/?purpose=CHAT_SESSION"
        )
        self.assertEqual(len(response.data["results"]), 1)

    def test_bad_time_range(self):
        response = self.client.get(
            f"/wallets/{self.wallet.uuid}/transactions/?since=yesterday"
        )
        self.assertEqual(response.status_code, 400)

    def test_filter_by_time_range(self):
        response = self.client.get(
            f"/wallets/{self.wallet.uuid}/transactions/?since=2000-01-01T00:00:00Z"
        )
        self.assertEqual(len(response.data["results"]), 3)

        response = self.client.get(
            f"/wallets/{self.wallet.uuid}/transactions/?until=2000-01-01T00:00:00Z"
        )
        self.assertEqual(response.data["results"], [])

    def test_bad_limit(self):
        response = self.client.get(f"/wallets/{self.wallet.uuid}/transactions/?limit=x")
        self.assertEqual(response.status_code, 400)

    def test_transaction_detail(self):
        tx = Transaction.objects.filter(wallet=self.wallet).first()
        response = self.client.get(f"/wallets/{self.wallet.uuid}/transactions/{tx.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["id"], tx.id)


# ============================================================
# Celery Task Tests
# ============================================================


class ReconcileTaskTest(TestCase):
    def test_reconcile_reports_divergent_wallets(self):
        healthy, _ = LedgerService.get_or_create_wallet("user-1")
        broken, _ = LedgerService.get_or_create_wallet("user-2")
        credit(healthy, 100)
        credit(broken, 100)
        Wallet.objects.filter(pk=broken.pk).update(balance=50)

        from wallets.tasks import reconcile_wallet_balances

        result = reconcile_wallet_balances.apply()
        self.assertEqual(result.get()["divergent"], [str(broken.uuid)])

        broken.refresh_from_db()
        self.assertEqual(broken.balance, 50)
