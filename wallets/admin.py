from django.contrib import admin

from wallets.models import Transaction, Wallet


class ReadOnlyAdminMixin:
    """
    Admin mixin for ledger-owned models: browsable but never editable, so
    balances can only move through LedgerService.
    """

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Wallet)
class WalletAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "uuid", "owner_id", "balance", "created_at", "updated_at")
    search_fields = ("uuid", "owner_id")
    readonly_fields = ("uuid", "owner_id", "balance", "created_at", "updated_at")


@admin.register(Transaction)
class TransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "wallet",
        "transaction_type",
        "amount",
        "purpose",
        "reference_id",
        "balance_after",
        "created_at",
    )
    list_filter = ("transaction_type", "purpose")
    search_fields = ("wallet__uuid", "wallet__owner_id", "reference_id")
    readonly_fields = (
        "wallet",
        "transaction_type",
        "amount",
        "purpose",
        "reference_id",
        "idempotency_key",
        "balance_after",
        "created_at",
    )
