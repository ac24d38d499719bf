from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog
from tickets.models import TicketCounterSession, TicketTransaction


class TicketTestMixin:
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="tk-admin", email="tkadmin@example.com", name="Asha", role="admin")
        self.cashier = user_model.objects.create_user(username="tk-cashier", email="tkc@example.com", name="Ravi", role="cashier")
        self.other_cashier = user_model.objects.create_user(username="tk-other", email="tko@example.com", name="Meena", role="cashier")

    def sell(self, user=None, **overrides):
        self.client.force_authenticate(user=user or self.cashier)
        payload = {
            "customer_name": "Kiran",
            "customer_phone": "9876543210",
            "men_ticket": 1,
            "women_ticket": 1,
            "subtotal": "1000.00",
            "payment_method": "cash",
        }
        payload.update(overrides)
        return self.client.post("/api/v1/ticket-transactions/", payload, format="json")


class TicketTransactionTests(TicketTestMixin, TestCase):
    def test_cash_sale_settles_in_full(self):
        response = self.sell(tag_numbers="000101,000102")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["total_due"], "1000.00")
        self.assertEqual(body["tag_list"], ["000101", "000102"])
        self.assertTrue(body["receipt_number"].startswith("TKT-"))
        self.assertEqual(body["cashier_name"], "Ravi")
        self.assertTrue(AuditLog.objects.filter(action="ticket_transaction.create", entity_id=body["id"]).exists())

    def test_requires_at_least_one_ticket(self):
        response = self.sell(men_ticket=0, women_ticket=0)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "tickets: At least one ticket is required.")
        self.assertFalse(TicketTransaction.objects.exists())

    def test_requires_customer_name(self):
        response = self.sell(customer_name="")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "customer_name: Customer name is required.")

    def test_total_due_must_match_subtotal(self):
        response = self.sell(total_due="900.00")

        self.assertEqual(response.status_code, 400)
        self.assertIn("total_due", response.json()["errors"])

    def test_vip_sale_is_free(self):
        response = self.sell(is_complimentary=True)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["total_due"], "0.00")
        self.assertEqual(response.json()["subtotal"], "1000.00")

    def test_split_parts_must_add_up(self):
        response = self.sell(payment_method="split", split_upi_amount="600.00", split_cash_amount="300.00")

        self.assertEqual(response.status_code, 400)
        self.assertIn("split_upi_amount", response.json()["errors"])

        response = self.sell(payment_method="split", split_upi_amount="600.00", split_cash_amount="400.00")
        self.assertEqual(response.status_code, 201)

    def test_tag_count_must_match_ticket_count(self):
        response = self.sell(tag_numbers="000101")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "tag_numbers: Expected 2 tag number(s) but received 1.")

    def test_tags_must_be_six_digits(self):
        response = self.sell(tag_numbers="101,000102")

        self.assertEqual(response.status_code, 400)
        self.assertIn("101", response.json()["message"])

    def test_cashier_sees_only_own_sales(self):
        self.sell()
        self.sell(user=self.other_cashier)

        self.client.force_authenticate(user=self.cashier)
        response = self.client.get(f"/api/v1/ticket-transactions/?cashier_id={self.other_cashier.id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["cashier"] for row in response.json()], [str(self.cashier.id)])

    def test_admin_filters_by_payment_method_and_search(self):
        self.sell(customer_name="Lakshmi", payment_method="upi")
        self.sell(customer_name="Gopal")

        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/ticket-transactions/?payment_method=upi")
        self.assertEqual([row["customer_name"] for row in response.json()], ["Lakshmi"])

        response = self.client.get("/api/v1/ticket-transactions/?search=Gopal")
        self.assertEqual([row["customer_name"] for row in response.json()], ["Gopal"])

        response = self.client.get("/api/v1/ticket-transactions/?payment_method=card")
        self.assertEqual(response.status_code, 400)

    def test_search_matches_case_exactly(self):
        self.sell(customer_name="Gopal")

        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/ticket-transactions/?search=gopal")

        self.assertEqual(response.json(), [])

    def test_search_by_receipt_number(self):
        receipt = self.sell().json()["receipt_number"]
        self.sell(customer_name="Someone Else")

        self.client.force_authenticate(user=self.admin)
        response = self.client.get(f"/api/v1/ticket-transactions/?search={receipt.lower()}")

        self.assertEqual([row["receipt_number"] for row in response.json()], [receipt])

    def test_summary_splits_payment_methods(self):
        self.sell(payment_method="upi", subtotal="500.00", women_ticket=0)
        self.sell(payment_method="cash", subtotal="800.00", child_ticket=1, women_ticket=0)
        self.sell(payment_method="split", split_upi_amount="400.00", split_cash_amount="600.00")
        self.sell(is_complimentary=True, subtotal="300.00", men_ticket=0, women_ticket=0, child_ticket=1)

        self.client.force_authenticate(user=self.cashier)
        response = self.client.get("/api/v1/ticket-transactions/summary/")

        self.assertEqual(response.status_code, 200)
        summary = response.json()
        self.assertEqual(summary["transaction_count"], 4)
        self.assertEqual(summary["men_count"], 3)
        self.assertEqual(summary["women_count"], 1)
        self.assertEqual(summary["child_count"], 2)
        self.assertEqual(summary["ticket_count"], 6)
        self.assertEqual(summary["vip_count"], 1)
        self.assertEqual(summary["vip_value"], "300.00")
        self.assertEqual(summary["upi_amount"], "900.00")
        self.assertEqual(summary["cash_amount"], "1400.00")
        self.assertEqual(summary["split_amount"], "1000.00")
        self.assertEqual(summary["total_sales"], "2300.00")

    def test_user_without_role_is_forbidden(self):
        nobody = get_user_model().objects.create_user(username="tk-none", email="none@example.com")

        response = self.sell(user=nobody)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["message"], "Forbidden - No role assigned.")


class TicketSessionTests(TicketTestMixin, TestCase):
    def open_session(self, user=None, **payload):
        self.client.force_authenticate(user=user or self.cashier)
        body = {"starting_tag": "000100", "tags_received": 10}
        body.update(payload)
        return self.client.post("/api/v1/ticket-sessions/open/", body, format="json")

    def test_open_session_and_read_current(self):
        response = self.open_session()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["next_tag"], "000100")
        self.assertTrue(response.json()["is_open"])

        current = self.client.get("/api/v1/ticket-sessions/current/")
        self.assertEqual(current.status_code, 200)
        self.assertEqual(current.json()["id"], response.json()["id"])

    def test_current_without_session_is_404(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/ticket-sessions/current/")

        self.assertEqual(response.status_code, 404)

    def test_starting_tag_must_be_six_digits(self):
        response = self.open_session(starting_tag="12345")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "starting_tag: Starting tag must be exactly 6 digits.")

    def test_second_open_session_conflicts(self):
        self.open_session()

        response = self.open_session(starting_tag="000500")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(TicketCounterSession.objects.filter(cashier=self.cashier).count(), 1)

    def test_sales_allocate_sequential_tags(self):
        session_id = self.open_session().json()["id"]

        first = self.sell()
        second = self.sell(men_ticket=0, women_ticket=0, child_ticket=3, subtotal="900.00")

        self.assertEqual(first.json()["tag_list"], ["000100", "000101"])
        self.assertEqual(second.json()["tag_list"], ["000102", "000103", "000104"])
        self.assertEqual(second.json()["session"], session_id)
        session = TicketCounterSession.objects.get(pk=session_id)
        self.assertEqual(session.next_tag, 105)

    def test_manual_tags_move_the_counter_forward(self):
        self.open_session()

        self.sell(tag_numbers="000150,000151")
        response = self.sell()

        self.assertEqual(response.json()["tag_list"], ["000152", "000153"])

    def test_tags_exhausted_near_the_limit(self):
        self.open_session(starting_tag="999999", tags_received=None)

        response = self.sell()

        self.assertEqual(response.status_code, 400)
        self.assertFalse(TicketTransaction.objects.exists())

    def test_close_returns_report(self):
        session_id = self.open_session().json()["id"]
        self.sell()
        self.sell(payment_method="upi", men_ticket=0, subtotal="500.00")

        response = self.client.post(f"/api/v1/ticket-sessions/{session_id}/close/")

        self.assertEqual(response.status_code, 200)
        report = response.json()
        self.assertFalse(report["session"]["is_open"])
        self.assertEqual(report["tags_used"], 3)
        self.assertEqual(report["first_tag_used"], "000100")
        self.assertEqual(report["last_tag_used"], "000102")
        self.assertEqual(report["next_tag"], "000103")
        self.assertEqual(report["unused_tags"], 7)
        self.assertEqual(report["summary"]["total_sales"], "1500.00")
        self.assertTrue(AuditLog.objects.filter(action="ticket_session.close", entity_id=session_id).exists())

        closed_again = self.client.post(f"/api/v1/ticket-sessions/{session_id}/close/")
        self.assertEqual(closed_again.status_code, 409)

    def test_sales_after_close_are_not_tagged(self):
        session_id = self.open_session().json()["id"]
        self.client.post(f"/api/v1/ticket-sessions/{session_id}/close/")

        response = self.sell()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["tag_list"], [])
        self.assertIsNone(response.json()["session"])

    def test_cashier_cannot_close_another_cashiers_session(self):
        session_id = self.open_session(user=self.other_cashier).json()["id"]

        self.client.force_authenticate(user=self.cashier)
        response = self.client.post(f"/api/v1/ticket-sessions/{session_id}/close/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(TicketCounterSession.objects.get(pk=session_id).is_open)

    def test_admin_can_close_and_report_any_session(self):
        session_id = self.open_session().json()["id"]

        self.client.force_authenticate(user=self.admin)
        report = self.client.get(f"/api/v1/ticket-sessions/{session_id}/report/")
        self.assertEqual(report.status_code, 200)
        self.assertEqual(report.json()["tags_used"], 0)
        self.assertIsNone(report.json()["last_tag_used"])

        response = self.client.post(f"/api/v1/ticket-sessions/{session_id}/close/")
        self.assertEqual(response.status_code, 200)

    def test_unknown_session_is_404(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/ticket-sessions/3f2b0e7c-7a3c-4a53-9d39-0a8f0b1d2c3e/report/")

        self.assertEqual(response.status_code, 404)

    def test_open_is_independent_per_cashier(self):
        self.open_session()

        response = self.open_session(user=self.other_cashier)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(TicketCounterSession.objects.filter(closed_at__isnull=True).count(), 2)
