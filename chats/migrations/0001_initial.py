import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="MentorProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("mentor_id", models.CharField(max_length=64, unique=True)),
                ("specialization", models.CharField(blank=True, default="", max_length=120)),
                ("experience_years", models.PositiveIntegerField(default=0)),
                ("bio", models.TextField(blank=True, default="")),
                ("price_per_10min", models.BigIntegerField(default=0)),
                ("price_per_20min", models.BigIntegerField(default=0)),
                ("price_per_week", models.BigIntegerField(default=0)),
                ("price_per_month", models.BigIntegerField(default=0)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("price_per_10min__gte", 0),
                            ("price_per_20min__gte", 0),
                            ("price_per_week__gte", 0),
                            ("price_per_month__gte", 0),
                        ),
                        name="mentor_prices_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True)),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                ("mentor_id", models.CharField(db_index=True, max_length=64)),
                (
                    "package_type",
                    models.CharField(choices=[("WEEK", "Week"), ("MONTH", "Month")], max_length=5),
                ),
                ("amount_paid", models.BigIntegerField()),
                (
                    "status",
                    models.CharField(
                        choices=[("ACTIVE", "Active"), ("EXPIRED", "Expired")],
                        default="ACTIVE",
                        max_length=7,
                    ),
                ),
                ("started_at", models.DateTimeField()),
                ("expires_at", models.DateTimeField()),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [models.Index(fields=["status", "expires_at"], name="idx_sub_status_expiry")],
            },
        ),
        migrations.CreateModel(
            name="ChatSession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True)),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                ("mentor_id", models.CharField(db_index=True, max_length=64)),
                (
                    "session_type",
                    models.CharField(
                        choices=[("QUICK", "Quick"), ("SUBSCRIPTION", "Subscription")],
                        max_length=12,
                    ),
                ),
                ("duration_minutes", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("amount_paid", models.BigIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING_PAYMENT", "Pending payment"),
                            ("ACTIVE", "Active"),
                            ("COMPLETED", "Completed"),
                            ("EXPIRED", "Expired"),
                        ],
                        default="PENDING_PAYMENT",
                        max_length=15,
                    ),
                ),
                ("started_at", models.DateTimeField()),
                ("expires_at", models.DateTimeField()),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sessions",
                        to="chats.subscription",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [models.Index(fields=["status", "expires_at"], name="idx_session_status_expiry")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("session_type", "SUBSCRIPTION"), ("subscription__isnull", False)),
                            models.Q(("session_type", "QUICK"), ("subscription__isnull", True)),
                            _connector="OR",
                        ),
                        name="session_subscription_matches_type",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sender_id", models.CharField(max_length=64)),
                ("content", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="chats.chatsession",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "indexes": [models.Index(fields=["session", "id"], name="idx_message_session_seq")],
            },
        ),
    ]
