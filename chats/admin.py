from django.contrib import admin

from chats.models import ChatSession, MentorProfile, Message, Subscription
from wallets.admin import ReadOnlyAdminMixin


@admin.register(MentorProfile)
class MentorProfileAdmin(admin.ModelAdmin):
    list_display = (
        "mentor_id",
        "specialization",
        "price_per_10min",
        "price_per_20min",
        "price_per_week",
        "price_per_month",
        "updated_at",
    )
    search_fields = ("mentor_id", "specialization")


@admin.register(Subscription)
class SubscriptionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "uuid",
        "user_id",
        "mentor_id",
        "package_type",
        "amount_paid",
        "status",
        "expires_at",
    )
    list_filter = ("package_type", "status")
    search_fields = ("uuid", "user_id", "mentor_id")


@admin.register(ChatSession)
class ChatSessionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "uuid",
        "user_id",
        "mentor_id",
        "session_type",
        "amount_paid",
        "status",
        "started_at",
        "expires_at",
    )
    list_filter = ("session_type", "status")
    search_fields = ("uuid", "user_id", "mentor_id")


@admin.register(Message)
class MessageAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "session", "sender_id", "created_at")
    search_fields = ("session__uuid", "sender_id")
