from django.urls import path
from rest_framework.routers import DefaultRouter

from rentals.reports import DamageReportView, InventoryReportView
from rentals.views import RentalTransactionViewSet

router = DefaultRouter()
router.register(r"transactions", RentalTransactionViewSet, basename="rental-transaction")

urlpatterns = router.urls + [
    path("reports/damages/", DamageReportView.as_view(), name="report_damages"),
    path("reports/inventory/", InventoryReportView.as_view(), name="report_inventory"),
]
