import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Wallet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True)),
                (
                    "owner_id",
                    models.CharField(
                        help_text="Opaque id of the owning user from the identity service.",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("balance", models.BigIntegerField(default=0)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("balance__gte", 0)), name="wallet_balance_non_negative"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "transaction_type",
                    models.CharField(choices=[("CREDIT", "Credit"), ("DEBIT", "Debit")], max_length=6),
                ),
                ("amount", models.BigIntegerField()),
                (
                    "purpose",
                    models.CharField(
                        choices=[
                            ("RECHARGE", "Recharge"),
                            ("CHAT_SESSION", "Chat session"),
                            ("SUBSCRIPTION", "Subscription"),
                        ],
                        max_length=12,
                    ),
                ),
                (
                    "reference_id",
                    models.UUIDField(help_text="Session, subscription or recharge that caused this entry."),
                ),
                (
                    "idempotency_key",
                    models.UUIDField(
                        blank=True,
                        editable=False,
                        help_text="Client-generated UUID for idempotent recharges.",
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "balance_after",
                    models.BigIntegerField(help_text="Wallet balance right after this entry was applied."),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "wallet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="wallets.wallet",
                    ),
                ),
            ],
            options={
                "ordering": ["-id"],
                "indexes": [models.Index(fields=["wallet", "-id"], name="idx_wallet_recent")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)), name="transaction_amount_positive"
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("transaction_type", "DEBIT")),
                        fields=("reference_id",),
                        name="uniq_debit_per_reference",
                    ),
                ],
            },
        ),
    ]
