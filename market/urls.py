from django.urls import path

from market.views import QuoteView

urlpatterns = [
    path("quotes/<str:ticker>", QuoteView.as_view(), name="market-quote"),
]
