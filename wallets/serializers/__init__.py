from wallets.serializers.wallet import WalletSerializer
from wallets.serializers.recharge import RechargeSerializer
from wallets.serializers.transaction import TransactionSerializer

__all__ = [
    "WalletSerializer",
    "RechargeSerializer",
    "TransactionSerializer",
]
