import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from django.db import models, transaction
from django.db.models import Case, F, Sum, When
from django.utils import timezone

from wallets.exceptions import DuplicateCharge, InsufficientFunds
from wallets.models import Transaction, Wallet

logger = logging.getLogger(__name__)


@dataclass
class TransactionPage:
    items: List[Transaction]
    next_cursor: Optional[str]


def _signed_amount(prefix=""):
    return Case(
        When(
            **{f"{prefix}transaction_type": Transaction.TransactionType.DEBIT},
            then=-F(f"{prefix}amount"),
        ),
        default=F(f"{prefix}amount"),
        output_field=models.BigIntegerField(),
    )


class LedgerService:
    """
    Owns every wallet balance change.

    apply_transaction locks the wallet row with select_for_update() and then
    moves the balance with a guarded F() update (`balance >= amount` for
    debits), so two concurrent debits against the same wallet can never both
    succeed on the same pre-debit balance. The balance change and the ledger
    append commit or roll back together.
    """

    @staticmethod
    def get_or_create_wallet(owner_id: str):
        """Return (wallet, created) for the owner, creating an empty wallet on first use."""
        wallet, created = Wallet.objects.get_or_create(owner_id=owner_id)
        if created:
            logger.info("Wallet created: wallet=%s owner=%s", wallet.uuid, owner_id)
        return wallet, created

    @staticmethod
    def get_balance(wallet_uuid) -> int:
        return Wallet.objects.values_list("balance", flat=True).get(uuid=wallet_uuid)

    @staticmethod
    @transaction.atomic
    def apply_transaction(
        wallet_uuid,
        transaction_type: str,
        amount: int,
        purpose: str,
        reference_id,
        idempotency_key=None,
    ) -> Transaction:
        """
        Apply one CREDIT or DEBIT to the wallet and append it to the ledger.

        A DEBIT whose reference was already charged with the same amount on
        the same wallet returns the existing entry instead of charging again.

        Raises:
            Wallet.DoesNotExist: If the wallet doesn't exist.
            ValueError: If amount is not a positive integer or the type is unknown.
            InsufficientFunds: If a DEBIT exceeds the current balance.
            DuplicateCharge: If the reference or idempotency key was already
                used with different parameters.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError("Transaction amount must be a positive integer.")
        if transaction_type not in Transaction.TransactionType.values:
            raise ValueError(f"Unknown transaction type: {transaction_type}")

        if idempotency_key:
            existing_tx = (
                Transaction.objects.select_related("wallet")
                .filter(idempotency_key=idempotency_key)
                .first()
            )
            if existing_tx:
                if (
                    existing_tx.amount != amount
                    or existing_tx.transaction_type != transaction_type
                    or existing_tx.purpose != purpose
                    or str(existing_tx.wallet.uuid) != str(wallet_uuid)
                ):
                    logger.warning(
                        "Idempotency conflict: key=%s existing_amount=%d new_amount=%d",
                        idempotency_key,
                        existing_tx.amount,
                        amount,
                    )
                    raise DuplicateCharge(
                        "Idempotency key was already used for a different request."
                    )
                logger.info(
                    "Idempotent ledger request: key=%s tx=%d",
                    idempotency_key,
                    existing_tx.id,
                )
                return existing_tx

        wallet = Wallet.objects.select_for_update().get(uuid=wallet_uuid)

        if transaction_type == Transaction.TransactionType.DEBIT:
            existing_debit = Transaction.objects.filter(
                reference_id=reference_id,
                transaction_type=Transaction.TransactionType.DEBIT,
            ).first()
            if existing_debit:
                if (
                    existing_debit.wallet_id != wallet.pk
                    or existing_debit.amount != amount
                    or existing_debit.purpose != purpose
                ):
                    logger.warning(
                        "Duplicate charge refused: reference=%s existing_tx=%d",
                        reference_id,
                        existing_debit.id,
                    )
                    raise DuplicateCharge(reference_id=str(reference_id))
                logger.info(
                    "Debit already applied: wallet=%s reference=%s tx=%d",
                    wallet.uuid,
                    reference_id,
                    existing_debit.id,
                )
                return existing_debit

            updated = Wallet.objects.filter(pk=wallet.pk, balance__gte=amount).update(
                balance=F("balance") - amount, updated_at=timezone.now()
            )
            if not updated:
                logger.warning(
                    "Debit refused (insufficient balance): wallet=%s balance=%d "
                    "amount=%d reference=%s",
                    wallet.uuid,
                    wallet.balance,
                    amount,
                    reference_id,
                )
                raise InsufficientFunds(
                    wallet=str(wallet.uuid), balance=wallet.balance, required=amount
                )
        else:
            Wallet.objects.filter(pk=wallet.pk).update(
                balance=F("balance") + amount, updated_at=timezone.now()
            )

        wallet.refresh_from_db(fields=["balance", "updated_at"])

        tx = Transaction.objects.create(
            wallet=wallet,
            transaction_type=transaction_type,
            amount=amount,
            purpose=purpose,
            reference_id=reference_id,
            idempotency_key=idempotency_key,
            balance_after=wallet.balance,
        )

        logger.info(
            "Ledger %s applied: wallet=%s amount=%d purpose=%s reference=%s "
            "new_balance=%d tx=%d",
            transaction_type,
            wallet.uuid,
            amount,
            purpose,
            reference_id,
            wallet.balance,
            tx.id,
        )
        return tx

    @staticmethod
    def recharge(wallet_uuid, amount: int, idempotency_key=None) -> Transaction:
        """Credit a simulated top-up; no payment gateway is involved."""
        return LedgerService.apply_transaction(
            wallet_uuid,
            Transaction.TransactionType.CREDIT,
            amount,
            Transaction.Purpose.RECHARGE,
            reference_id=uuid.uuid4(),
            idempotency_key=idempotency_key,
        )

    @staticmethod
    def list_transactions(
        wallet_uuid,
        limit: int = 20,
        cursor: Optional[str] = None,
        transaction_type: Optional[str] = None,
        purpose: Optional[str] = None,
        created_after=None,
        created_before=None,
    ) -> TransactionPage:
        """
        Return up to `limit` entries, most recent first.

        `next_cursor` is None on the last page; passing it back as `cursor`
        continues after the last entry returned.
        """
        if limit <= 0:
            raise ValueError("limit must be positive.")

        queryset = Transaction.objects.filter(wallet__uuid=wallet_uuid).order_by("-id")
        if transaction_type:
            queryset = queryset.filter(transaction_type=transaction_type.upper())
        if purpose:
            queryset = queryset.filter(purpose=purpose.upper())
        if created_after:
            queryset = queryset.filter(created_at__gte=created_after)
        if created_before:
            queryset = queryset.filter(created_at__lt=created_before)
        if cursor:
            try:
                before_id = int(cursor)
            except (TypeError, ValueError):
                raise ValueError("Invalid cursor.")
            queryset = queryset.filter(id__lt=before_id)

        items = list(queryset[: limit + 1])
        next_cursor = None
        if len(items) > limit:
            items = items[:limit]
            next_cursor = str(items[-1].id)
        return TransactionPage(items=items, next_cursor=next_cursor)

    @staticmethod
    def compute_balance(wallet: Wallet) -> int:
        """Recompute the balance from the ledger alone."""
        total = Transaction.objects.filter(wallet=wallet).aggregate(
            total=Sum(_signed_amount())
        )["total"]
        return total or 0

    @staticmethod
    def find_divergent_wallets() -> List[Wallet]:
        """Wallets whose stored balance differs from the sum of their ledger."""
        wallets = Wallet.objects.annotate(
            ledger_total=Sum(_signed_amount("transactions__"))
        ).order_by("id")
        return [w for w in wallets.iterator() if (w.ledger_total or 0) != w.balance]
