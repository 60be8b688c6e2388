from rest_framework import serializers

from wallets.models import Wallet


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ("uuid", "owner_id", "balance", "created_at", "updated_at")
        read_only_fields = fields
