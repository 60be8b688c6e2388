from wallets.views.wallet import CreateWalletView, RetrieveWalletView
from wallets.views.recharge import RechargeView
from wallets.views.transaction import TransactionListView, TransactionDetailView

__all__ = [
    "CreateWalletView",
    "RetrieveWalletView",
    "RechargeView",
    "TransactionListView",
    "TransactionDetailView",
]
