from io import StringIO

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import AuditLog


class RegistrationTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user_model.objects.create_user(
            username="existing-user",
            email="existing@example.com",
            password="pass1234",
        )

    def test_registered_user_starts_without_role(self):
        response = self.client.post(
            "/api/v1/register/",
            {"email": "New.Cashier@Example.com", "password": "pass12345", "name": "New Cashier"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        user = self.user_model.objects.get(email="new.cashier@example.com")
        self.assertIsNone(user.role)
        self.assertEqual(user.name, "New Cashier")
        self.assertTrue(AuditLog.objects.filter(action="user.register", entity_id=str(user.id)).exists())

    def test_registration_rejects_case_insensitive_duplicate_email(self):
        response = self.client.post(
            "/api/v1/register/",
            {"email": "EXISTING@example.com", "password": "pass12345"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertEqual(payload["errors"], {"email": ["A user with this email already exists."]})
        self.assertEqual(payload["error"], "email: A user with this email already exists.")

    def test_token_accepts_email_in_username_field(self):
        self.client.post(
            "/api/v1/register/",
            {"email": "login@example.com", "password": "pass12345"},
            format="json",
        )

        response = self.client.post(
            "/api/v1/token/",
            {"username": "LOGIN@example.com", "password": "pass12345"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())


class UserManagementTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="admin-core",
            email="admin@example.com",
            password="pass1234",
            role="admin",
        )
        self.cashier = self.user_model.objects.create_user(
            username="cashier-core",
            email="cashier@example.com",
            password="pass1234",
            role="cashier",
        )
        self.pending = self.user_model.objects.create_user(
            username="pending-core",
            email="pending@example.com",
            password="pass1234",
        )

    def test_admin_lists_users_paginated(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "page", "previous", "results", "total_pages"])
        self.assertEqual(payload["count"], 3)

    def test_cashier_cannot_manage_users_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.cashier)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_user_without_role_gets_role_missing_message(self):
        self.client.force_authenticate(user=self.pending)

        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"], "Forbidden - No role assigned.")

    def test_admin_assigns_role_and_change_is_audited(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/users/{self.pending.id}/", {"role": "cashier"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.role, "cashier")
        log = AuditLog.objects.get(action="user.role_change", entity_id=str(self.pending.id))
        self.assertIsNone(log.before_snapshot["role"])
        self.assertEqual(log.after_snapshot["role"], "cashier")

    def test_admin_rejects_unknown_role(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/users/{self.pending.id}/", {"role": "manager"}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_admin_preprovisions_user_by_email(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/users/",
            {"email": "Counter2@Example.com", "name": "Counter Two", "role": "cashier"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = self.user_model.objects.get(email="counter2@example.com")
        self.assertEqual(created.role, "cashier")
        self.assertFalse(created.has_usable_password())

    def test_delete_clears_role_without_removing_account(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/users/{self.cashier.id}/")

        self.assertEqual(response.status_code, 204)
        self.cashier.refresh_from_db()
        self.assertIsNone(self.cashier.role)
        self.assertTrue(AuditLog.objects.filter(action="user.role_clear", entity_id=str(self.cashier.id)).exists())

    def test_admin_cannot_clear_own_role(self):
        self.client.force_authenticate(user=self.admin)

        delete_res = self.client.delete(f"/api/v1/users/{self.admin.id}/")
        demote_res = self.client.patch(f"/api/v1/users/{self.admin.id}/", {"role": "cashier"}, format="json")

        self.assertEqual(delete_res.status_code, 400)
        self.assertEqual(demote_res.status_code, 400)
        self.admin.refresh_from_db()
        self.assertEqual(self.admin.role, "admin")

    def test_me_returns_current_user_for_any_authenticated_caller(self):
        self.client.force_authenticate(user=self.pending)

        response = self.client.get("/api/v1/users/me/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["email"], "pending@example.com")
        self.assertIsNone(response.json()["role"])

    def test_unauthenticated_request_is_rejected(self):
        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 401)


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = get_user_model().objects.create_user(
            username="audit-admin",
            email="audit@example.com",
            password="pass1234",
            role="admin",
        )

    def test_audit_log_records_request_id(self):
        self.client.force_authenticate(user=self.admin)
        target = get_user_model().objects.create_user(username="target", email="target@example.com")

        res = self.client.patch(
            f"/api/v1/users/{target.id}/",
            {"role": "cashier"},
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(res.status_code, 200)
        self.assertTrue(AuditLog.objects.filter(action="user.role_change", entity="user", request_id="req-123").exists())

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_logs_filter_by_local_day(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="price.update", entity="price", actor=self.admin)
        today = timezone.localdate().isoformat()

        response = self.client.get(f"/api/v1/admin/audit-logs/?start_date={today}&end_date={today}")
        self.assertEqual([row["id"] for row in response.json()["results"]], [str(log.id)])

        response = self.client.get("/api/v1/admin/audit-logs/?end_date=2024-02-30")
        self.assertEqual(response.status_code, 400)

    def test_audit_log_export_is_csv(self):
        self.client.force_authenticate(user=self.admin)
        AuditLog.objects.create(action="price.update", entity="price", actor=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/export/")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response["Content-Type"].startswith("text/csv"))
        self.assertIn("price.update", response.content.decode())


class MakeAdminCommandTests(TestCase):
    def test_promotes_existing_user(self):
        user = get_user_model().objects.create_user(username="promote", email="promote@example.com", role="cashier")

        out = StringIO()
        call_command("make_admin", "--email", "PROMOTE@example.com", stdout=out)

        user.refresh_from_db()
        self.assertEqual(user.role, "admin")
        self.assertIn("Promoted", out.getvalue())

    def test_creates_missing_user_as_admin(self):
        call_command("make_admin", "--email", "boss@example.com", stdout=StringIO())

        user = get_user_model().objects.get(email="boss@example.com")
        self.assertEqual(user.role, "admin")
