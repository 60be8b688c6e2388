from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("wallets/", include("wallets.urls")),
    path("chats/", include("chats.urls")),
    path("market/", include("market.urls")),
]
