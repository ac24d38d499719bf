from django.urls import path
from rest_framework.routers import DefaultRouter

from catalog.views import PriceViewSet, SettingsView

router = DefaultRouter()
router.register(r"prices", PriceViewSet, basename="price")

urlpatterns = router.urls + [
    path("settings/", SettingsView.as_view(), name="settings"),
]
