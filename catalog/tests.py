from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from catalog.models import Price, Setting
from core.models import AuditLog


class PriceApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="price-admin", email="padmin@example.com", role="admin")
        self.cashier = user_model.objects.create_user(username="price-cashier", email="pcash@example.com", role="cashier")
        self.tube = Price.objects.create(item_key="tube", item_name="Tube", price=Decimal("50.00"))
        self.retired = Price.objects.create(item_key="goggles", item_name="Goggles", price=Decimal("30.00"), is_active=False)

    def test_anonymous_can_list_active_prices(self):
        response = self.client.get("/api/v1/prices/")

        self.assertEqual(response.status_code, 200)
        keys = [item["item_key"] for item in response.json()]
        self.assertEqual(keys, ["tube"])
        self.assertEqual(response.json()[0]["price"], "50.00")

    def test_admin_can_include_inactive_prices(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/prices/?include_inactive=1")

        keys = {item["item_key"] for item in response.json()}
        self.assertEqual(keys, {"tube", "goggles"})

    def test_admin_updates_price_and_it_is_audited(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/prices/{self.tube.id}/", {"price": "60.00"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.tube.refresh_from_db()
        self.assertEqual(self.tube.price, Decimal("60.00"))
        self.assertEqual(self.tube.updated_by, self.admin)
        log = AuditLog.objects.get(action="price.update", entity_id=str(self.tube.id))
        self.assertEqual(log.before_snapshot["price"], "50.00")
        self.assertEqual(log.after_snapshot["price"], "60.00")

    def test_admin_can_reactivate_inactive_price(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/prices/{self.retired.id}/", {"is_active": True}, format="json")

        self.assertEqual(response.status_code, 200)
        self.retired.refresh_from_db()
        self.assertTrue(self.retired.is_active)

    def test_negative_price_is_rejected(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/prices/{self.tube.id}/", {"price": "-1"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.tube.refresh_from_db()
        self.assertEqual(self.tube.price, Decimal("50.00"))

    def test_item_key_is_read_only(self):
        self.client.force_authenticate(user=self.admin)

        self.client.patch(f"/api/v1/prices/{self.tube.id}/", {"item_key": "locker"}, format="json")

        self.tube.refresh_from_db()
        self.assertEqual(self.tube.item_key, "tube")

    def test_cashier_cannot_update_price(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.patch(f"/api/v1/prices/{self.tube.id}/", {"price": "1.00"}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_anonymous_cannot_update_price(self):
        response = self.client.patch(f"/api/v1/prices/{self.tube.id}/", {"price": "1.00"}, format="json")

        self.assertEqual(response.status_code, 401)


class SettingsApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="set-admin", email="sadmin@example.com", role="admin")
        self.cashier = user_model.objects.create_user(username="set-cashier", email="scash@example.com", role="cashier")
        Setting.objects.create(key="business_name", value="Splash Park")

    def test_settings_are_public_key_value_object(self):
        response = self.client.get("/api/v1/settings/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"business_name": "Splash Park"})

    def test_admin_upserts_setting(self):
        self.client.force_authenticate(user=self.admin)

        created = self.client.put("/api/v1/settings/", {"key": "upi_id", "value": "park@upi"}, format="json")
        updated = self.client.put("/api/v1/settings/", {"key": "business_name", "value": "Splash World"}, format="json")

        self.assertEqual(created.status_code, 200)
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(Setting.objects.get(key="upi_id").value, "park@upi")
        self.assertEqual(Setting.objects.get(key="business_name").value, "Splash World")
        log = AuditLog.objects.get(action="setting.update", entity_id="business_name")
        self.assertEqual(log.before_snapshot, {"key": "business_name", "value": "Splash Park"})

    def test_blank_key_is_rejected(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.put("/api/v1/settings/", {"key": "  ", "value": "x"}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_cashier_cannot_write_settings(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.put("/api/v1/settings/", {"key": "upi_id", "value": "evil@upi"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Setting.objects.filter(key="upi_id").exists())


class SeedPricesCommandTests(TestCase):
    def test_seed_is_idempotent_and_keeps_edits(self):
        call_command("seed_prices", stdout=StringIO())
        Price.objects.filter(item_key="tube").update(price=Decimal("75.00"))

        call_command("seed_prices", stdout=StringIO())

        self.assertEqual(Price.objects.filter(item_key="male_costume").count(), 1)
        self.assertEqual(Price.objects.get(item_key="tube").price, Decimal("75.00"))
        self.assertTrue(Price.objects.filter(item_key="men_ticket").exists())
