import threading
import uuid
from datetime import timedelta
from itertools import islice
from unittest.mock import patch

from django.db import OperationalError, connections
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from chats.exceptions import (
    ProductNotOffered,
    SessionExpired,
    SessionNotActive,
    SubscriptionExpired,
    SubscriptionNotActive,
    Unauthorized,
)
from chats.models import ChatSession, MentorProfile, Message, Subscription
from chats.services import (
    ExpiryMonitor,
    MessageFeed,
    PricingResolver,
    ProductKind,
    SessionOpener,
)
from wallets.exceptions import DuplicateCharge, InsufficientFunds
from wallets.models import Transaction
from wallets.services import LedgerService

USER = "user-1"
MENTOR = "mentor-1"


def make_mentor(mentor_id=MENTOR, **prices):
    defaults = {
        "price_per_10min": 150,
        "price_per_20min": 250,
        "price_per_week": 1000,
        "price_per_month": 3000,
    }
    defaults.update(prices)
    return MentorProfile.objects.create(mentor_id=mentor_id, **defaults)


def fund(owner_id, amount):
    wallet, _ = LedgerService.get_or_create_wallet(owner_id)
    if amount:
        LedgerService.recharge(wallet.uuid, amount)
    wallet.refresh_from_db()
    return wallet


def frozen(at):
    return patch("django.utils.timezone.now", return_value=at)


# ============================================================
# Pricing
# ============================================================


class PricingResolverTest(TestCase):
    def setUp(self):
        make_mentor(price_per_20min=0)

    def test_quote(self):
        self.assertEqual(PricingResolver.quote(MENTOR, ProductKind.QUICK_10), 150)
        self.assertEqual(PricingResolver.quote(MENTOR, ProductKind.SUB_MONTH), 3000)

    def test_zero_price_is_not_offered(self):
        with self.assertRaises(ProductNotOffered):
            PricingResolver.quote(MENTOR, ProductKind.QUICK_20)

    def test_unknown_mentor_is_not_offered(self):
        with self.assertRaises(ProductNotOffered):
            PricingResolver.quote("nobody", ProductKind.QUICK_10)

    def test_only_10_and_20_minute_chats(self):
        self.assertEqual(PricingResolver.quick_product(20), ProductKind.QUICK_20)
        with self.assertRaises(ProductNotOffered):
            PricingResolver.quick_product(15)

    @override_settings(SUBSCRIPTION_WEEK_DAYS=7, SUBSCRIPTION_MONTH_DAYS=30)
    def test_subscription_length(self):
        self.assertEqual(PricingResolver.subscription_length("WEEK"), timedelta(days=7))
        self.assertEqual(PricingResolver.subscription_length("MONTH"), timedelta(days=30))


# ============================================================
# Session opening
# ============================================================


class OpenQuickSessionTest(TestCase):
    def setUp(self):
        make_mentor()

    def test_open_quick_session_charges_wallet(self):
        wallet = fund(USER, 200)

        session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 50)
        self.assertEqual(session.status, ChatSession.Status.ACTIVE)
        self.assertEqual(session.amount_paid, 150)
        self.assertEqual(session.expires_at - session.started_at, timedelta(minutes=10))

        debits = Transaction.objects.filter(
            wallet=wallet, transaction_type=Transaction.TransactionType.DEBIT
        )
        self.assertEqual(debits.count(), 1)
        self.assertEqual(debits[0].amount, 150)
        self.assertEqual(debits[0].purpose, Transaction.Purpose.CHAT_SESSION)
        self.assertEqual(debits[0].reference_id, session.uuid)

    def test_insufficient_balance_creates_nothing(self):
        wallet = fund(USER, 100)

        with self.assertRaises(InsufficientFunds):
            SessionOpener.open_quick_session(USER, MENTOR, 10)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 100)
        self.assertFalse(ChatSession.objects.exists())

    def test_duration_not_offered(self):
        fund(USER, 1000)
        with self.assertRaises(ProductNotOffered):
            SessionOpener.open_quick_session(USER, MENTOR, 15)
        self.assertFalse(ChatSession.objects.exists())

    def test_cannot_book_yourself(self):
        fund(MENTOR, 1000)
        with self.assertRaises(ValueError):
            SessionOpener.open_quick_session(MENTOR, MENTOR, 10)

    def test_same_session_id_is_charged_once(self):
        wallet = fund(USER, 1000)
        session_uuid = uuid.uuid4()

        first = SessionOpener.open_quick_session(USER, MENTOR, 10, session_uuid)
        second = SessionOpener.open_quick_session(USER, MENTOR, 10, session_uuid)

        wallet.refresh_from_db()
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(wallet.balance, 850)
        self.assertEqual(ChatSession.objects.count(), 1)

    def test_session_id_of_another_user_is_refused(self):
        fund(USER, 1000)
        fund("user-2", 1000)
        session_uuid = uuid.uuid4()
        SessionOpener.open_quick_session(USER, MENTOR, 10, session_uuid)

        with self.assertRaises(Unauthorized):
            SessionOpener.open_quick_session("user-2", MENTOR, 10, session_uuid)

        self.assertEqual(LedgerService.get_or_create_wallet("user-2")[0].balance, 1000)

    def test_session_id_reused_with_different_terms(self):
        wallet = fund(USER, 1000)
        make_mentor("mentor-2")
        session_uuid = uuid.uuid4()
        SessionOpener.open_quick_session(USER, MENTOR, 10, session_uuid)

        with self.assertRaises(DuplicateCharge):
            SessionOpener.open_quick_session(USER, MENTOR, 20, session_uuid)
        with self.assertRaises(DuplicateCharge):
            SessionOpener.open_quick_session(USER, "mentor-2", 10, session_uuid)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 850)
        self.assertEqual(ChatSession.objects.count(), 1)

    def test_session_id_cannot_pay_for_a_subscription(self):
        wallet = fund(USER, 1000)
        make_mentor("mentor-2", price_per_week=150)
        reserved = uuid.uuid4()
        SessionOpener.open_quick_session(USER, MENTOR, 10, reserved)

        with self.assertRaises(DuplicateCharge):
            SessionOpener.purchase_subscription(USER, "mentor-2", "WEEK", reserved)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 850)
        self.assertFalse(Subscription.objects.exists())
        self.assertEqual(
            Transaction.objects.filter(
                transaction_type=Transaction.TransactionType.DEBIT
            ).count(),
            1,
        )

    def test_subscription_id_cannot_pay_for_a_session(self):
        wallet = fund(USER, 2000)
        reserved = uuid.uuid4()
        SessionOpener.purchase_subscription(USER, MENTOR, "WEEK", reserved)

        with self.assertRaises(DuplicateCharge):
            SessionOpener.open_quick_session(USER, MENTOR, 10, reserved)
        with self.assertRaises(DuplicateCharge):
            SessionOpener.open_subscription_session(USER, reserved, session_uuid=reserved)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 1000)
        self.assertFalse(ChatSession.objects.exists())

    def test_transient_failure_is_retried_without_double_charge(self):
        wallet = fund(USER, 1000)
        real_create = ChatSession.objects.create
        calls = []

        def flaky_create(**kwargs):
            calls.append(kwargs["uuid"])
            if len(calls) == 1:
                raise OperationalError("connection reset")
            return real_create(**kwargs)

        with patch.object(ChatSession.objects, "create", side_effect=flaky_create):
            session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        wallet.refresh_from_db()
        self.assertEqual(len(calls), 2)
        self.assertEqual(calls[0], calls[1])
        self.assertEqual(session.uuid, calls[0])
        self.assertEqual(wallet.balance, 850)
        self.assertEqual(
            Transaction.objects.filter(reference_id=session.uuid).count(), 1
        )

    @override_settings(SESSION_OPEN_MAX_ATTEMPTS=2)
    def test_gives_up_after_max_attempts(self):
        wallet = fund(USER, 1000)

        with patch.object(
            ChatSession.objects, "create", side_effect=OperationalError("down")
        ) as create:
            with self.assertRaises(OperationalError):
                SessionOpener.open_quick_session(USER, MENTOR, 10)

        wallet.refresh_from_db()
        self.assertEqual(create.call_count, 2)
        self.assertEqual(wallet.balance, 1000)
        self.assertFalse(
            Transaction.objects.filter(
                transaction_type=Transaction.TransactionType.DEBIT
            ).exists()
        )

    def test_countdown_is_queued_after_commit(self):
        fund(USER, 1000)

        with patch("chats.tasks.expire_session") as task:
            with self.captureOnCommitCallbacks(execute=True):
                session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        task.apply_async.assert_called_once_with(
            args=[str(session.uuid)], eta=session.expires_at
        )

    def test_early_countdown_leaves_session_active(self):
        fund(USER, 1000)

        with self.captureOnCommitCallbacks(execute=True):
            session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        session.refresh_from_db()
        self.assertEqual(session.status, ChatSession.Status.ACTIVE)


class SubscriptionTest(TestCase):
    def setUp(self):
        make_mentor()
        self.t0 = timezone.now()

    def purchase(self, package_type="WEEK"):
        with frozen(self.t0):
            return SessionOpener.purchase_subscription(USER, MENTOR, package_type)

    def test_purchase_subscription(self):
        wallet = fund(USER, 1500)

        subscription = self.purchase()

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 500)
        self.assertEqual(subscription.amount_paid, 1000)
        self.assertEqual(subscription.status, Subscription.Status.ACTIVE)
        self.assertEqual(subscription.expires_at, self.t0 + timedelta(days=7))
        debit = Transaction.objects.get(reference_id=subscription.uuid)
        self.assertEqual(debit.purpose, Transaction.Purpose.SUBSCRIPTION)

    def test_purchase_insufficient_balance(self):
        fund(USER, 999)
        with self.assertRaises(InsufficientFunds):
            self.purchase()
        self.assertFalse(Subscription.objects.exists())

    def test_subscription_session_copies_expiry(self):
        fund(USER, 1500)
        subscription = self.purchase()

        with frozen(self.t0 + timedelta(days=1)):
            session = SessionOpener.open_subscription_session(USER, subscription.uuid)

        self.assertEqual(session.expires_at, self.t0 + timedelta(days=7))
        self.assertEqual(session.session_type, ChatSession.SessionType.SUBSCRIPTION)
        self.assertEqual(session.amount_paid, 0)
        self.assertEqual(session.subscription_id, subscription.pk)

        Subscription.objects.filter(pk=subscription.pk).update(
            expires_at=self.t0 + timedelta(days=37)
        )

        with frozen(self.t0 + timedelta(days=7) - timedelta(seconds=1)):
            MessageFeed.post(session.uuid, USER, "still here")

        with frozen(self.t0 + timedelta(days=7)):
            with self.assertRaises(SessionExpired):
                MessageFeed.post(session.uuid, USER, "too late")

        session.refresh_from_db()
        self.assertEqual(session.expires_at, self.t0 + timedelta(days=7))
        self.assertEqual(session.status, ChatSession.Status.EXPIRED)

    def test_subscription_session_is_not_charged(self):
        wallet = fund(USER, 1500)
        subscription = self.purchase()

        SessionOpener.open_subscription_session(USER, subscription.uuid)
        SessionOpener.open_subscription_session(USER, subscription.uuid)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 500)

    def test_expired_subscription_is_refused_and_marked(self):
        fund(USER, 1500)
        subscription = self.purchase()

        with frozen(self.t0 + timedelta(days=8)):
            with self.assertRaises(SubscriptionExpired):
                SessionOpener.open_subscription_session(USER, subscription.uuid)

        subscription.refresh_from_db()
        self.assertEqual(subscription.status, Subscription.Status.EXPIRED)
        self.assertFalse(ChatSession.objects.exists())

        with self.assertRaises(SubscriptionNotActive):
            SessionOpener.open_subscription_session(USER, subscription.uuid)

    def test_subscription_of_another_user(self):
        fund(USER, 1500)
        subscription = self.purchase()
        with self.assertRaises(Unauthorized):
            SessionOpener.open_subscription_session("user-2", subscription.uuid)

    def test_effective_status_follows_clock(self):
        fund(USER, 1500)
        subscription = self.purchase()
        self.assertEqual(subscription.effective_status, Subscription.Status.ACTIVE)

        with frozen(self.t0 + timedelta(days=7)):
            self.assertEqual(subscription.effective_status, Subscription.Status.EXPIRED)

    def test_subscription_id_reused_with_different_package(self):
        wallet = fund(USER, 5000)
        reserved = uuid.uuid4()
        first = SessionOpener.purchase_subscription(USER, MENTOR, "WEEK", reserved)

        replay = SessionOpener.purchase_subscription(USER, MENTOR, "WEEK", reserved)
        self.assertEqual(replay.pk, first.pk)
        with self.assertRaises(DuplicateCharge):
            SessionOpener.purchase_subscription(USER, MENTOR, "MONTH", reserved)

        wallet.refresh_from_db()
        self.assertEqual(wallet.balance, 4000)

    def test_session_id_reused_for_another_subscription(self):
        fund(USER, 5000)
        weekly = SessionOpener.purchase_subscription(USER, MENTOR, "WEEK")
        monthly = SessionOpener.purchase_subscription(USER, MENTOR, "MONTH")
        session_uuid = uuid.uuid4()

        session = SessionOpener.open_subscription_session(USER, weekly.uuid, session_uuid)
        replay = SessionOpener.open_subscription_session(USER, weekly.uuid, session_uuid)
        self.assertEqual(replay.pk, session.pk)

        with self.assertRaises(DuplicateCharge):
            SessionOpener.open_subscription_session(USER, monthly.uuid, session_uuid)

    def test_far_expiry_is_left_to_sweep(self):
        fund(USER, 1500)
        subscription = self.purchase()

        with patch("chats.tasks.expire_session") as task:
            with self.captureOnCommitCallbacks(execute=True):
                SessionOpener.open_subscription_session(USER, subscription.uuid)

        task.apply_async.assert_not_called()


# ============================================================
# Expiry
# ============================================================


class ExpiryMonitorTest(TestCase):
    def setUp(self):
        make_mentor()
        fund(USER, 1000)
        self.session = SessionOpener.open_quick_session(USER, MENTOR, 10)
        self.after_expiry = self.session.expires_at + timedelta(seconds=1)

    def test_not_expired_before_due(self):
        self.assertFalse(ExpiryMonitor.expire_session(self.session.uuid))
        self.session.refresh_from_db()
        self.assertEqual(self.session.status, ChatSession.Status.ACTIVE)

    def test_expire_is_idempotent(self):
        self.assertTrue(
            ExpiryMonitor.expire_session(self.session.uuid, now=self.after_expiry)
        )
        self.assertFalse(
            ExpiryMonitor.expire_session(self.session.uuid, now=self.after_expiry)
        )
        self.session.refresh_from_db()
        self.assertEqual(self.session.status, ChatSession.Status.EXPIRED)
        self.assertEqual(self.session.ended_at, self.after_expiry)

    def test_completed_session_never_expires(self):
        ExpiryMonitor.complete_session(self.session.uuid, MENTOR)

        self.assertFalse(
            ExpiryMonitor.expire_session(self.session.uuid, now=self.after_expiry)
        )
        self.session.refresh_from_db()
        self.assertEqual(self.session.status, ChatSession.Status.COMPLETED)

    def test_only_terminal_transitions(self):
        with self.assertRaises(ValueError):
            ChatSession.objects.transition(self.session.uuid, ChatSession.Status.ACTIVE)

    def test_sweep_only_ends_due_sessions(self):
        fund("user-2", 1000)
        later = SessionOpener.open_quick_session("user-2", MENTOR, 20)

        expired = ExpiryMonitor.sweep_expired_sessions(now=self.after_expiry)

        self.assertEqual(expired, [self.session.uuid])
        later.refresh_from_db()
        self.assertEqual(later.status, ChatSession.Status.ACTIVE)

    def test_complete_session(self):
        session = ExpiryMonitor.complete_session(self.session.uuid, USER)
        self.assertEqual(session.status, ChatSession.Status.COMPLETED)
        self.assertIsNotNone(session.ended_at)
        self.assertEqual(session.remaining_seconds(), 0)

        with self.assertRaises(SessionNotActive):
            ExpiryMonitor.complete_session(self.session.uuid, USER)

    def test_complete_by_outsider(self):
        with self.assertRaises(Unauthorized):
            ExpiryMonitor.complete_session(self.session.uuid, "user-2")

    def test_complete_after_time_is_up(self):
        with frozen(self.after_expiry):
            with self.assertRaises(SessionExpired):
                ExpiryMonitor.complete_session(self.session.uuid, USER)

        self.session.refresh_from_db()
        self.assertEqual(self.session.status, ChatSession.Status.EXPIRED)

    def test_remaining_seconds(self):
        now = self.session.expires_at - timedelta(minutes=3)
        self.assertEqual(self.session.remaining_seconds(now), 180)
        self.assertEqual(self.session.remaining_seconds(self.after_expiry), 0)


class ExpiryTaskTest(TestCase):
    def setUp(self):
        make_mentor()
        fund(USER, 1000)
        self.session = SessionOpener.open_quick_session(USER, MENTOR, 10)

    def test_expire_session_task_before_due(self):
        from chats.tasks import expire_session

        result = expire_session.apply(args=[str(self.session.uuid)]).get()

        self.assertEqual(result, {"session": str(self.session.uuid), "expired": False})

    def test_expire_session_task_after_due(self):
        from chats.tasks import expire_session

        with frozen(self.session.expires_at):
            result = expire_session.apply(args=[str(self.session.uuid)]).get()

        self.assertTrue(result["expired"])

    def test_sweep_task(self):
        from chats.tasks import sweep_expired_sessions

        fund("user-2", 2000)
        subscription = SessionOpener.purchase_subscription("user-2", MENTOR, "WEEK")

        with frozen(timezone.now() + timedelta(days=8)):
            result = sweep_expired_sessions.apply().get()

        self.assertEqual(result, {"sessions": 1, "subscriptions": 1})
        self.session.refresh_from_db()
        subscription.refresh_from_db()
        self.assertEqual(self.session.status, ChatSession.Status.EXPIRED)
        self.assertEqual(subscription.status, Subscription.Status.EXPIRED)


# ============================================================
# Message feed
# ============================================================


class MessageFeedTest(TestCase):
    def setUp(self):
        make_mentor()
        fund(USER, 1000)
        self.session = SessionOpener.open_quick_session(USER, MENTOR, 10)

    def test_post_by_both_participants(self):
        first = MessageFeed.post(self.session.uuid, USER, "  Should I buy?  ")
        second = MessageFeed.post(self.session.uuid, MENTOR, "Wait for the close.")

        self.assertEqual(first.content, "Should I buy?")
        self.assertLess(first.id, second.id)

    def test_empty_and_oversized_content(self):
        with self.assertRaises(ValueError):
            MessageFeed.post(self.session.uuid, USER, "   ")
        with override_settings(MESSAGE_MAX_LENGTH=5):
            with self.assertRaises(ValueError):
                MessageFeed.post(self.session.uuid, USER, "too long")

    def test_post_by_outsider(self):
        with self.assertRaises(Unauthorized):
            MessageFeed.post(self.session.uuid, "user-2", "hello")
        self.assertFalse(Message.objects.exists())

    def test_post_to_completed_session(self):
        ExpiryMonitor.complete_session(self.session.uuid, USER)
        with self.assertRaises(SessionNotActive):
            MessageFeed.post(self.session.uuid, USER, "hello")

    def test_post_after_time_is_up_before_sweep(self):
        with frozen(self.session.expires_at + timedelta(seconds=1)):
            with self.assertRaises(SessionExpired):
                MessageFeed.post(self.session.uuid, USER, "hello")

        self.session.refresh_from_db()
        self.assertEqual(self.session.status, ChatSession.Status.EXPIRED)
        self.assertFalse(Message.objects.exists())

    def test_history_after_cursor(self):
        messages = [
            MessageFeed.post(self.session.uuid, USER, f"message {i}") for i in range(4)
        ]

        history = MessageFeed.history(self.session.uuid, MENTOR, after_id=messages[1].id)

        self.assertEqual([m.id for m in history], [messages[2].id, messages[3].id])
        with self.assertRaises(Unauthorized):
            MessageFeed.history(self.session.uuid, "user-2")

    def test_subscribe_yields_in_order_and_ends_with_session(self):
        posted = [
            MessageFeed.post(self.session.uuid, USER, f"message {i}").id for i in range(3)
        ]
        ExpiryMonitor.complete_session(self.session.uuid, USER)

        received = [m.id for m in MessageFeed.subscribe(self.session.uuid)]

        self.assertEqual(received, posted)

    def test_subscribe_resumes_after_cursor(self):
        posted = [
            MessageFeed.post(self.session.uuid, USER, f"message {i}").id for i in range(3)
        ]
        ExpiryMonitor.complete_session(self.session.uuid, USER)

        received = [
            m.id for m in MessageFeed.subscribe(self.session.uuid, after_id=posted[0])
        ]

        self.assertEqual(received, posted[1:])

    def test_subscribe_delivers_new_messages(self):
        feed = MessageFeed.subscribe(self.session.uuid, poll_interval=0)

        first = MessageFeed.post(self.session.uuid, USER, "one")
        self.assertEqual(next(feed).id, first.id)

        second = MessageFeed.post(self.session.uuid, MENTOR, "two")
        third = MessageFeed.post(self.session.uuid, USER, "three")
        self.assertEqual([m.id for m in islice(feed, 2)], [second.id, third.id])

        ExpiryMonitor.complete_session(self.session.uuid, MENTOR)
        self.assertEqual(list(feed), [])


# ============================================================
# API Tests
# ============================================================


class ChatAPITestCase(TestCase):
    def setUp(self):
        make_mentor()
        self.wallet = fund(USER, 200)
        self.client = APIClient()
        self.client.credentials(HTTP_X_USER_ID=USER)
        self.mentor_client = APIClient()
        self.mentor_client.credentials(HTTP_X_USER_ID=MENTOR, HTTP_X_USER_ROLE="MENTOR")


class SessionAPITest(ChatAPITestCase):
    def test_open_quick_session(self):
        response = self.client.post(
            "/chats/sessions/",
            {"mentor_id": MENTOR, "duration_minutes": 10},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "ACTIVE")
        self.assertEqual(response.data["amount_paid"], 150)
        self.assertGreater(response.data["remaining_seconds"], 590)
        self.assertIsNone(response.data["subscription_uuid"])

        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, 50)

    def test_insufficient_funds_prompts_recharge(self):
        self.client.post(
            "/chats/sessions/", {"mentor_id": MENTOR, "duration_minutes": 10}, format="json"
        )
        response = self.client.post(
            "/chats/sessions/", {"mentor_id": MENTOR, "duration_minutes": 10}, format="json"
        )
        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.data["code"], "insufficient_funds")
        self.assertEqual(response.data["action"], "recharge")
        self.assertEqual(response.data["balance"], 50)
        self.assertEqual(response.data["required"], 150)

    def test_product_not_offered(self):
        response = self.client.post(
            "/chats/sessions/", {"mentor_id": MENTOR, "duration_minutes": 30}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "product_not_offered")

    def test_idempotency_key_replay(self):
        key = str(uuid.uuid4())
        payload = {"mentor_id": MENTOR, "duration_minutes": 10}

        first = self.client.post(
            "/chats/sessions/", payload, format="json", HTTP_IDEMPOTENCY_KEY=key
        )
        second = self.client.post(
            "/chats/sessions/", payload, format="json", HTTP_IDEMPOTENCY_KEY=key
        )

        self.assertEqual(second.status_code, 201)
        self.assertEqual(first.data["uuid"], key)
        self.assertEqual(second.data["uuid"], key)
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, 50)

    def test_missing_principal(self):
        response = APIClient().get("/chats/sessions/")
        self.assertEqual(response.status_code, 401)

    def test_list_sessions(self):
        session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        response = self.client.get("/chats/sessions/")
        self.assertEqual([s["uuid"] for s in response.data], [str(session.uuid)])

        response = self.mentor_client.get("/chats/sessions/")
        self.assertEqual(len(response.data), 1)

        ExpiryMonitor.complete_session(session.uuid, USER)
        self.assertEqual(self.client.get("/chats/sessions/").data, [])
        self.assertEqual(len(self.client.get("/chats/sessions/?status=ALL").data), 1)
        self.assertEqual(
            len(self.client.get("/chats/sessions/?status=completed").data), 1
        )

    def test_list_sessions_bad_filter(self):
        response = self.client.get("/chats/sessions/?status=OPEN")
        self.assertEqual(response.status_code, 400)

    def test_session_detail(self):
        session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        response = self.client.get(f"/chats/sessions/{session.uuid}/")
        self.assertEqual(response.status_code, 200)

        outsider = APIClient()
        outsider.credentials(HTTP_X_USER_ID="user-2")
        response = outsider.get(f"/chats/sessions/{session.uuid}/")
        self.assertEqual(response.status_code, 403)

        response = self.client.get(f"/chats/sessions/{uuid.uuid4()}/")
        self.assertEqual(response.status_code, 404)

    def test_complete_session(self):
        session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        response = self.mentor_client.post(f"/chats/sessions/{session.uuid}/complete")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "COMPLETED")

        response = self.client.post(f"/chats/sessions/{session.uuid}/complete")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["action"], "leave_chat")


class MessageAPITest(ChatAPITestCase):
    def setUp(self):
        super().setUp()
        self.session = SessionOpener.open_quick_session(USER, MENTOR, 10)
        self.url = f"/chats/sessions/{self.session.uuid}/messages/"

    def test_post_and_list_messages(self):
        response = self.client.post(self.url, {"content": "Is AAPL a buy?"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["session_uuid"], str(self.session.uuid))
        first_id = response.data["id"]

        self.mentor_client.post(self.url, {"content": "Not yet."}, format="json")

        response = self.mentor_client.get(self.url)
        self.assertEqual([m["content"] for m in response.data], ["Is AAPL a buy?", "Not yet."])

        response = self.client.get(f"{self.url}?after={first_id}")
        self.assertEqual([m["content"] for m in response.data], ["Not yet."])

    def test_post_blank_message(self):
        response = self.client.post(self.url, {"content": "   "}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_post_to_ended_session(self):
        ExpiryMonitor.complete_session(self.session.uuid, USER)

        response = self.client.post(self.url, {"content": "hello"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "session_not_active")
        self.assertEqual(response.data["action"], "leave_chat")

    def test_post_after_time_is_up(self):
        with frozen(self.session.expires_at + timedelta(seconds=1)):
            response = self.client.post(self.url, {"content": "hello"}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "session_expired")

    def test_post_by_outsider(self):
        outsider = APIClient()
        outsider.credentials(HTTP_X_USER_ID="user-2")
        response = outsider.post(self.url, {"content": "hello"}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_bad_cursor(self):
        response = self.client.get(f"{self.url}?after=abc")
        self.assertEqual(response.status_code, 400)

    def test_stream(self):
        first = MessageFeed.post(self.session.uuid, USER, "one")
        second = MessageFeed.post(self.session.uuid, MENTOR, "two")
        ExpiryMonitor.complete_session(self.session.uuid, USER)

        response = self.client.get(
            f"/chats/sessions/{self.session.uuid}/stream",
            HTTP_LAST_EVENT_ID=str(first.id),
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/event-stream")
        body = b"".join(response.streaming_content).decode()
        self.assertNotIn(f"id: {first.id}\n", body)
        self.assertIn(f"id: {second.id}\nevent: message\n", body)
        self.assertTrue(body.rstrip().endswith('data: {"status": "COMPLETED"}'))

    def test_stream_by_outsider(self):
        outsider = APIClient()
        outsider.credentials(HTTP_X_USER_ID="user-2")
        response = outsider.get(f"/chats/sessions/{self.session.uuid}/stream")
        self.assertEqual(response.status_code, 403)


class SubscriptionAPITest(ChatAPITestCase):
    def setUp(self):
        super().setUp()
        LedgerService.recharge(self.wallet.uuid, 1000)

    def test_purchase_and_open_session(self):
        response = self.client.post(
            "/chats/subscriptions/",
            {"mentor_id": MENTOR, "package_type": "WEEK"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["amount_paid"], 1000)
        self.assertEqual(response.data["effective_status"], "ACTIVE")
        subscription_uuid = response.data["uuid"]

        response = self.client.post(f"/chats/subscriptions/{subscription_uuid}/sessions")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["session_type"], "SUBSCRIPTION")
        self.assertEqual(response.data["subscription_uuid"], subscription_uuid)
        self.assertEqual(response.data["amount_paid"], 0)

        response = self.client.get("/chats/subscriptions/")
        self.assertEqual(len(response.data), 1)

    def test_invalid_package(self):
        response = self.client.post(
            "/chats/subscriptions/",
            {"mentor_id": MENTOR, "package_type": "YEAR"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_expired_subscription(self):
        subscription = SessionOpener.purchase_subscription(USER, MENTOR, "WEEK")

        with frozen(subscription.expires_at + timedelta(seconds=1)):
            response = self.client.post(
                f"/chats/subscriptions/{subscription.uuid}/sessions"
            )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "subscription_expired")

    def test_idempotency_key_of_a_session_refused_for_subscription(self):
        key = str(uuid.uuid4())
        self.client.post(
            "/chats/sessions/",
            {"mentor_id": MENTOR, "duration_minutes": 10},
            format="json",
            HTTP_IDEMPOTENCY_KEY=key,
        )

        response = self.client.post(
            "/chats/subscriptions/",
            {"mentor_id": MENTOR, "package_type": "WEEK"},
            format="json",
            HTTP_IDEMPOTENCY_KEY=key,
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "duplicate_charge")
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, 1050)

    def test_unknown_subscription(self):
        response = self.client.post(f"/chats/subscriptions/{uuid.uuid4()}/sessions")
        self.assertEqual(response.status_code, 404)


class MentorAPITest(ChatAPITestCase):
    def test_get_price_sheet(self):
        response = self.client.get(f"/chats/mentors/{MENTOR}/prices")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["price_per_10min"], 150)

        response = self.client.get("/chats/mentors/nobody/prices")
        self.assertEqual(response.status_code, 404)

    def test_mentor_creates_price_sheet(self):
        client = APIClient()
        client.credentials(HTTP_X_USER_ID="mentor-2", HTTP_X_USER_ROLE="MENTOR")

        response = client.put(
            "/chats/mentors/mentor-2/prices",
            {"price_per_10min": 300, "specialization": "Options"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["price_per_10min"], 300)
        self.assertEqual(response.data["price_per_20min"], 0)

        response = client.put(
            "/chats/mentors/mentor-2/prices", {"price_per_20min": 500}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            PricingResolver.quote("mentor-2", ProductKind.QUICK_20), 500
        )

    def test_negative_price(self):
        response = self.mentor_client.put(
            f"/chats/mentors/{MENTOR}/prices", {"price_per_10min": -1}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_only_the_mentor_edits_prices(self):
        response = self.client.put(
            f"/chats/mentors/{MENTOR}/prices", {"price_per_10min": 1}, format="json"
        )
        self.assertEqual(response.status_code, 403)

    def test_price_change_does_not_touch_open_sessions(self):
        session = SessionOpener.open_quick_session(USER, MENTOR, 10)

        self.mentor_client.put(
            f"/chats/mentors/{MENTOR}/prices", {"price_per_10min": 999}, format="json"
        )

        session.refresh_from_db()
        self.assertEqual(session.amount_paid, 150)

    def test_stats(self):
        session = SessionOpener.open_quick_session(USER, MENTOR, 10)
        ExpiryMonitor.complete_session(session.uuid, USER)
        LedgerService.recharge(self.wallet.uuid, 1000)
        SessionOpener.purchase_subscription(USER, MENTOR, "WEEK")

        response = self.mentor_client.get(f"/chats/mentors/{MENTOR}/stats")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total_earnings"], 1150)
        self.assertEqual(response.data["completed_sessions"], 1)
        self.assertEqual(response.data["active_sessions"], 0)
        self.assertEqual(response.data["active_subscriptions"], 1)

        response = self.client.get(f"/chats/mentors/{MENTOR}/stats")
        self.assertEqual(response.status_code, 403)

    def test_stats_skip_subscriptions_past_expiry(self):
        LedgerService.recharge(self.wallet.uuid, 1000)
        subscription = SessionOpener.purchase_subscription(USER, MENTOR, "WEEK")

        with frozen(subscription.expires_at + timedelta(seconds=1)):
            response = self.mentor_client.get(f"/chats/mentors/{MENTOR}/stats")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["active_subscriptions"], 0)
        self.assertEqual(response.data["total_earnings"], 1000)


# ============================================================
# Concurrency
# ============================================================


def run_in_threads(target, count=2):
    """Start `count` threads on `target` at once; return results or exceptions."""
    barrier = threading.Barrier(count)
    outcomes = []

    def worker():
        barrier.wait()
        try:
            outcomes.append(target())
        except Exception as exc:
            outcomes.append(exc)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


@patch("chats.tasks.expire_session")
class ConcurrentOpenTest(TransactionTestCase):
    def setUp(self):
        make_mentor()
        self.wallet = fund(USER, 150)

    def test_two_tabs_with_balance_for_one_session(self, _task):
        outcomes = run_in_threads(
            lambda: SessionOpener.open_quick_session(USER, MENTOR, 10)
        )

        opened = [o for o in outcomes if isinstance(o, ChatSession)]
        refused = [o for o in outcomes if isinstance(o, InsufficientFunds)]
        self.assertEqual((len(opened), len(refused)), (1, 1), outcomes)

        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, 0)
        self.assertEqual(
            ChatSession.objects.filter(status=ChatSession.Status.ACTIVE).count(), 1
        )
        self.assertEqual(
            Transaction.objects.filter(
                transaction_type=Transaction.TransactionType.DEBIT
            ).count(),
            1,
        )

    def test_two_tabs_with_the_same_session_id(self, _task):
        session_uuid = uuid.uuid4()

        outcomes = run_in_threads(
            lambda: SessionOpener.open_quick_session(USER, MENTOR, 10, session_uuid)
        )

        self.assertTrue(all(isinstance(o, ChatSession) for o in outcomes), outcomes)
        self.assertEqual({o.uuid for o in outcomes}, {session_uuid})
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, 0)
        self.assertEqual(Transaction.objects.filter(reference_id=session_uuid).count(), 1)


@patch("chats.tasks.expire_session")
class FeedDrainTest(TransactionTestCase):
    def setUp(self):
        make_mentor()
        fund(USER, 1000)
        self.session = SessionOpener.open_quick_session(USER, MENTOR, 10)

    def test_final_drain_waits_for_post_in_flight(self, _task):
        in_flight = threading.Event()
        release = threading.Event()
        real_create = Message.objects.create

        def slow_create(**kwargs):
            in_flight.set()
            release.wait(5)
            return real_create(**kwargs)

        def post():
            try:
                MessageFeed.post(self.session.uuid, MENTOR, "last word")
            finally:
                connections.close_all()

        writer = threading.Thread(target=post)

        # The writer still has time left when it posts; the reader sees the
        # session as over.
        def has_expired(session, now=None):
            return threading.current_thread() is not writer

        with patch.object(ChatSession, "has_expired", has_expired), patch.object(
            Message.objects, "create", side_effect=slow_create
        ):
            writer.start()
            self.assertTrue(in_flight.wait(5))
            timer = threading.Timer(0.2, release.set)
            timer.start()

            received = [
                m.content for m in MessageFeed.subscribe(self.session.uuid, poll_interval=0)
            ]

            writer.join()
            timer.join()

        self.assertEqual(received, ["last word"])
