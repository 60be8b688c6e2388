from rest_framework import serializers

from wallets.models import Transaction


class TransactionSerializer(serializers.ModelSerializer):
    """Read-only serializer for ledger entries."""

    wallet_uuid = serializers.UUIDField(source="wallet.uuid", read_only=True)

    class Meta:
        model = Transaction
        fields = (
            "id",
            "wallet_uuid",
            "transaction_type",
            "amount",
            "purpose",
            "reference_id",
            "balance_after",
            "created_at",
        )
        read_only_fields = fields
