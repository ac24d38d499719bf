from django.urls import path
from rest_framework.routers import DefaultRouter

from tickets.views import (
    TicketSessionCloseView,
    TicketSessionCurrentView,
    TicketSessionOpenView,
    TicketSessionReportView,
    TicketTransactionViewSet,
)

router = DefaultRouter()
router.register(r"ticket-transactions", TicketTransactionViewSet, basename="ticket-transaction")

urlpatterns = router.urls + [
    path("ticket-sessions/open/", TicketSessionOpenView.as_view(), name="ticket-session-open"),
    path("ticket-sessions/current/", TicketSessionCurrentView.as_view(), name="ticket-session-current"),
    path("ticket-sessions/<uuid:session_id>/close/", TicketSessionCloseView.as_view(), name="ticket-session-close"),
    path("ticket-sessions/<uuid:session_id>/report/", TicketSessionReportView.as_view(), name="ticket-session-report"),
]
