from django.urls import path

from chats.views import (
    CompleteSessionView,
    MentorProfileView,
    MentorStatsView,
    MessageListCreateView,
    MessageStreamView,
    SessionDetailView,
    SessionListCreateView,
    SubscriptionListCreateView,
    SubscriptionSessionView,
)

urlpatterns = [
    path(
        "mentors/<str:mentor_id>/prices",
        MentorProfileView.as_view(),
        name="mentor-prices",
    ),
    path(
        "mentors/<str:mentor_id>/stats",
        MentorStatsView.as_view(),
        name="mentor-stats",
    ),
    path("sessions/", SessionListCreateView.as_view(), name="session-list"),
    path("sessions/<uuid:uuid>/", SessionDetailView.as_view(), name="session-detail"),
    path(
        "sessions/<uuid:uuid>/complete",
        CompleteSessionView.as_view(),
        name="session-complete",
    ),
    path(
        "sessions/<uuid:uuid>/messages/",
        MessageListCreateView.as_view(),
        name="session-messages",
    ),
    path(
        "sessions/<uuid:uuid>/stream",
        MessageStreamView.as_view(),
        name="session-stream",
    ),
    path(
        "subscriptions/",
        SubscriptionListCreateView.as_view(),
        name="subscription-list",
    ),
    path(
        "subscriptions/<uuid:uuid>/sessions",
        SubscriptionSessionView.as_view(),
        name="subscription-sessions",
    ),
]
