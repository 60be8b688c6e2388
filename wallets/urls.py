from django.urls import path

from wallets.views import (
    CreateWalletView,
    RechargeView,
    RetrieveWalletView,
    TransactionDetailView,
    TransactionListView,
)

urlpatterns = [
    path("", CreateWalletView.as_view(), name="wallet-create"),
    path("<uuid:uuid>/", RetrieveWalletView.as_view(), name="wallet-detail"),
    path("<uuid:uuid>/recharge", RechargeView.as_view(), name="wallet-recharge"),
    path(
        "<uuid:uuid>/transactions/",
        TransactionListView.as_view(),
        name="wallet-transactions",
    ),
    path(
        "<uuid:uuid>/transactions/<int:id>/",
        TransactionDetailView.as_view(),
        name="transaction-detail",
    ),
]
