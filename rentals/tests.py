from datetime import datetime, time, timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import AuditLog
from rentals.models import RentalTransaction
from tickets.models import TicketCounterSession, TicketTransaction


class RentalTestMixin:
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="hc-admin", email="hcadmin@example.com", name="Asha", role="admin")
        self.cashier = user_model.objects.create_user(username="hc-cashier", email="hcc@example.com", name="Ravi", role="cashier")
        self.other_cashier = user_model.objects.create_user(username="hc-other", email="hco@example.com", name="Meena", role="cashier")

    def rent(self, user=None, **overrides):
        self.client.force_authenticate(user=user or self.cashier)
        payload = {
            "customer_name": "Kiran",
            "customer_phone": "9876543210",
            "tube": 2,
            "subtotal": "100.00",
            "advance": "500.00",
        }
        payload.update(overrides)
        return self.client.post("/api/v1/transactions/", payload, format="json")

    def link(self, parent_id, user=None, **overrides):
        payload = {
            "customer_name": "Kiran",
            "customer_phone": "9876543210",
            "tube": 0,
            "locker": 1,
            "subtotal": "150.00",
            "parent_transaction": parent_id,
        }
        payload.update(overrides)
        return self.rent(user=user, **payload)

    def return_advance(self, transaction_id, items, linked_items=None, user=None):
        self.client.force_authenticate(user=user or self.cashier)
        payload = {"return_details": {"items": items}}
        if linked_items is not None:
            payload["linked_return_details"] = {"items": linked_items}
        return self.client.patch(f"/api/v1/transactions/{transaction_id}/return-advance/", payload, format="json")


class RentalCreateTests(RentalTestMixin, TestCase):
    def test_create_computes_total_due(self):
        response = self.rent()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["total_due"], "600.00")
        self.assertEqual(body["status"], "active")
        self.assertTrue(body["receipt_number"].startswith("HC-"))
        self.assertEqual(body["receipt_number"], f"HC-{body['receipt_no']}")
        self.assertEqual(body["cashier_name"], "Ravi")
        self.assertTrue(AuditLog.objects.filter(action="rental_transaction.create", entity_id=body["id"]).exists())

    def test_supplied_total_due_must_match(self):
        response = self.rent(total_due="550.00")

        self.assertEqual(response.status_code, 400)
        self.assertIn("total_due", response.json()["errors"])
        self.assertFalse(RentalTransaction.objects.exists())

    def test_vip_pays_advance_only(self):
        response = self.rent(is_complimentary=True)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["total_due"], "500.00")

    def test_requires_an_item(self):
        response = self.rent(tube=0)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "items: Select at least one item.")

    def test_requires_customer_phone(self):
        response = self.rent(customer_phone="")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "customer_phone: Customer phone is required.")

    def test_negative_quantity_is_rejected(self):
        response = self.rent(tube=-1)

        self.assertEqual(response.status_code, 400)

    def test_linked_transaction_is_paid_from_advance(self):
        parent_id = self.rent().json()["id"]

        response = self.link(parent_id, advance="200.00")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["advance"], "0.00")
        self.assertEqual(body["total_due"], "150.00")
        self.assertEqual(body["parent_transaction"], parent_id)

    def test_second_link_conflicts(self):
        parent_id = self.rent().json()["id"]
        self.link(parent_id)

        response = self.link(parent_id)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(RentalTransaction.objects.filter(parent_transaction_id=parent_id).count(), 1)

    def test_credit_above_advance_is_rejected(self):
        parent = self.rent().json()

        response = self.link(parent["id"], subtotal="600.00")

        self.assertEqual(response.status_code, 400)
        self.assertIn("by 100.00", response.json()["message"])
        self.assertEqual(RentalTransaction.objects.count(), 1)

    def test_link_to_missing_parent_is_404(self):
        response = self.link("3f2b0e7c-7a3c-4a53-9d39-0a8f0b1d2c3e")

        self.assertEqual(response.status_code, 404)

    def test_link_to_child_is_rejected(self):
        parent_id = self.rent().json()["id"]
        child_id = self.link(parent_id).json()["id"]

        response = self.link(child_id)

        self.assertEqual(response.status_code, 400)
        self.assertIn("parent_transaction", response.json()["errors"])

    def test_link_to_returned_parent_conflicts(self):
        parent_id = self.rent().json()["id"]
        self.return_advance(parent_id, [{"type": "tube", "returned_good": 2}])

        response = self.link(parent_id)

        self.assertEqual(response.status_code, 409)


class ReturnAdvanceTests(RentalTestMixin, TestCase):
    def test_return_with_linked_transaction(self):
        parent_id = self.rent().json()["id"]
        child_id = self.link(parent_id).json()["id"]

        response = self.return_advance(
            parent_id,
            [{"type": "tube", "returned_good": 2}],
            [{"type": "locker", "returned_good": 1}],
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "advance_returned")
        self.assertEqual(body["credit_applied"], "150.00")
        self.assertEqual(body["actual_amount_returned"], "350.00")
        self.assertEqual(body["advance_returned_by_name"], "Ravi")
        self.assertEqual(body["linked_transaction"]["id"], child_id)
        self.assertEqual(body["linked_transaction"]["status"], "advance_returned")

        parent = RentalTransaction.objects.get(pk=parent_id)
        child = RentalTransaction.objects.get(pk=child_id)
        self.assertEqual(parent.advance, Decimal("500.00"))
        self.assertEqual(child.actual_amount_returned, Decimal("0.00"))
        self.assertEqual(parent.advance_returned_at, child.advance_returned_at)
        self.assertTrue(AuditLog.objects.filter(action="rental_transaction.return_advance", entity_id=parent_id).exists())

    def test_lost_item_deduction_reduces_refund(self):
        txn_id = self.rent(tube=1, subtotal="50.00", advance="200.00").json()["id"]

        response = self.return_advance(txn_id, [{"type": "tube", "lost": 1, "deduction": "100.00"}])

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["actual_amount_returned"], "100.00")
        self.assertEqual(response.json()["total_deduction"], "100.00")
        details = RentalTransaction.objects.get(pk=txn_id).return_details
        self.assertEqual(details["items"][0]["lost"], 1)
        self.assertEqual(details["items"][0]["deduction"], "100.00")

    def test_deduction_above_advance_is_rejected(self):
        txn_id = self.rent(tube=1, subtotal="50.00", advance="100.00").json()["id"]

        response = self.return_advance(txn_id, [{"type": "tube", "returned_damaged": 1, "deduction": "150.00"}])

        self.assertEqual(response.status_code, 400)
        self.assertTrue(response.json()["message"].startswith("Deduction exceeds remaining advance"))
        txn = RentalTransaction.objects.get(pk=txn_id)
        self.assertEqual(txn.status, "active")
        self.assertIsNone(txn.return_details)

    def test_quantity_mismatch_names_expected_and_received(self):
        txn_id = self.rent().json()["id"]

        response = self.return_advance(txn_id, [{"type": "tube", "returned_good": 1}])

        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["message"],
            "Tube: expected 2 but received 1 (good 1, damaged 0, lost 0).",
        )

    def test_item_not_rented_must_be_zero(self):
        txn_id = self.rent().json()["id"]

        response = self.return_advance(
            txn_id,
            [{"type": "tube", "returned_good": 2}, {"type": "locker", "returned_good": 1}],
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("locker", response.json()["errors"]["return_details"])

    def test_damage_needs_deduction_unless_vip(self):
        txn_id = self.rent().json()["id"]
        response = self.return_advance(txn_id, [{"type": "tube", "returned_good": 1, "returned_damaged": 1}])
        self.assertEqual(response.status_code, 400)

        vip_id = self.rent(is_complimentary=True).json()["id"]
        response = self.return_advance(vip_id, [{"type": "tube", "returned_good": 1, "returned_damaged": 1}])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["actual_amount_returned"], "500.00")

    def test_duplicate_item_rows_are_rejected(self):
        txn_id = self.rent().json()["id"]

        response = self.return_advance(
            txn_id,
            [{"type": "tube", "returned_good": 1}, {"type": "tube", "returned_good": 1}],
        )

        self.assertEqual(response.status_code, 400)

    def test_second_return_conflicts(self):
        txn_id = self.rent().json()["id"]
        self.return_advance(txn_id, [{"type": "tube", "returned_good": 2}])
        returned_at = RentalTransaction.objects.get(pk=txn_id).advance_returned_at

        response = self.return_advance(txn_id, [{"type": "tube", "returned_good": 2}], user=self.admin)

        self.assertEqual(response.status_code, 409)
        txn = RentalTransaction.objects.get(pk=txn_id)
        self.assertEqual(txn.advance_returned_at, returned_at)
        self.assertEqual(txn.advance_returned_by, self.cashier)

    def test_returning_linked_transaction_points_to_parent(self):
        parent = self.rent().json()
        child_id = self.link(parent["id"]).json()["id"]

        response = self.return_advance(child_id, [{"type": "locker", "returned_good": 1}])

        self.assertEqual(response.status_code, 400)
        self.assertIn(parent["receipt_number"], response.json()["message"])

    def test_linked_breakdown_is_required(self):
        parent_id = self.rent().json()["id"]
        self.link(parent_id)

        response = self.return_advance(parent_id, [{"type": "tube", "returned_good": 2}])

        self.assertEqual(response.status_code, 400)
        self.assertIn("linked_return_details", response.json()["errors"])
        self.assertEqual(RentalTransaction.objects.filter(status="advance_returned").count(), 0)

    def test_unknown_transaction_is_404(self):
        response = self.return_advance("not-a-uuid", [{"type": "tube", "returned_good": 2}])

        self.assertEqual(response.status_code, 404)

    def test_any_cashier_may_return(self):
        txn_id = self.rent().json()["id"]

        response = self.return_advance(txn_id, [{"type": "tube", "returned_good": 2}], user=self.other_cashier)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["advance_returned_by_name"], "Meena")


class RentalListingTests(RentalTestMixin, TestCase):
    def test_cashier_listing_is_scoped_even_with_cashier_filter(self):
        self.rent()
        self.rent(user=self.other_cashier)

        self.client.force_authenticate(user=self.cashier)
        response = self.client.get(f"/api/v1/transactions/?cashier_id={self.other_cashier.id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["cashier"] for row in response.json()], [str(self.cashier.id)])

    def test_admin_filters_by_cashier(self):
        self.rent()
        self.rent(user=self.other_cashier)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get(f"/api/v1/transactions/?cashier_id={self.other_cashier.id}")

        self.assertEqual([row["cashier"] for row in response.json()], [str(self.other_cashier.id)])

    def test_cashier_cannot_retrieve_other_cashiers_transaction(self):
        other_id = self.rent(user=self.other_cashier).json()["id"]

        self.client.force_authenticate(user=self.cashier)
        response = self.client.get(f"/api/v1/transactions/{other_id}/")

        self.assertEqual(response.status_code, 404)

    def test_children_are_nested_under_parents(self):
        parent_id = self.rent().json()["id"]
        child_id = self.link(parent_id, customer_name="Kiran Jr").json()["id"]

        response = self.client.get("/api/v1/transactions/")

        rows = response.json()
        self.assertEqual([row["id"] for row in rows], [parent_id])
        self.assertEqual(rows[0]["linked_transaction"]["id"], child_id)

    def test_search_with_include_linked_surfaces_parent(self):
        parent_id = self.rent(customer_name="Kiran").json()["id"]
        self.link(parent_id, customer_name="Zoya")
        self.rent(customer_name="Arjun")

        response = self.client.get("/api/v1/transactions/?search=Zoya&include_linked=true")
        self.assertEqual([row["id"] for row in response.json()], [parent_id])

        response = self.client.get("/api/v1/transactions/?search=Zoya")
        self.assertEqual(response.json(), [])

    def test_search_is_case_sensitive_on_names(self):
        self.rent(customer_name="Kiran")

        response = self.client.get("/api/v1/transactions/?search=kiran")
        self.assertEqual(response.json(), [])

        response = self.client.get("/api/v1/transactions/?search=Kir")
        self.assertEqual([row["customer_name"] for row in response.json()], ["Kiran"])

    def test_search_by_phone_fragment_and_lowercase_receipt(self):
        receipt = self.rent(customer_phone="9123456789").json()["receipt_number"]
        self.rent(customer_phone="9000000000")

        response = self.client.get("/api/v1/transactions/?search=234567")
        self.assertEqual([row["receipt_number"] for row in response.json()], [receipt])

        response = self.client.get(f"/api/v1/transactions/?search={receipt.lower()}")
        self.assertEqual([row["receipt_number"] for row in response.json()], [receipt])

    def test_status_filter(self):
        returned_id = self.rent().json()["id"]
        active_id = self.rent().json()["id"]
        self.return_advance(returned_id, [{"type": "tube", "returned_good": 2}])

        response = self.client.get("/api/v1/transactions/?status=active")
        self.assertEqual([row["id"] for row in response.json()], [active_id])

        response = self.client.get("/api/v1/transactions/?status=lost")
        self.assertEqual(response.status_code, 400)

    def test_date_filters(self):
        old_id = self.rent().json()["id"]
        new_id = self.rent().json()["id"]
        RentalTransaction.objects.filter(pk=old_id).update(created_at=timezone.now() - timedelta(days=3))
        today = timezone.localdate().isoformat()

        response = self.client.get(f"/api/v1/transactions/?start_date={today}&end_date={today}")
        self.assertEqual([row["id"] for row in response.json()], [new_id])

        response = self.client.get("/api/v1/transactions/?start_date=2030-01-02&end_date=2030-01-01")
        self.assertEqual(response.status_code, 400)

    def test_date_only_end_covers_the_whole_local_day(self):
        late_id = self.rent().json()["id"]
        day = timezone.localdate() - timedelta(days=2)
        late_evening = timezone.make_aware(datetime.combine(day, time(23, 30)))
        RentalTransaction.objects.filter(pk=late_id).update(created_at=late_evening)

        response = self.client.get(f"/api/v1/transactions/?start_date={day.isoformat()}&end_date={day.isoformat()}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()], [late_id])

    def test_datetime_bounds_are_honoured(self):
        txn_id = self.rent().json()["id"]
        day = timezone.localdate() - timedelta(days=2)
        RentalTransaction.objects.filter(pk=txn_id).update(
            created_at=timezone.make_aware(datetime.combine(day, time(15, 0)))
        )

        response = self.client.get(f"/api/v1/transactions/?start_date={day.isoformat()}T14:00&end_date={day.isoformat()}T16:00")
        self.assertEqual([row["id"] for row in response.json()], [txn_id])

        response = self.client.get(f"/api/v1/transactions/?start_date={day.isoformat()}T15:30")
        self.assertEqual(response.json(), [])

    def test_impossible_date_is_rejected(self):
        self.rent()

        for query in ("start_date=2024-02-30", "end_date=2024-13-01", "start_date=2024-02-30T10:00", "end_date=soon"):
            response = self.client.get(f"/api/v1/transactions/?{query}")

            self.assertEqual(response.status_code, 400, query)
            self.assertEqual(response.json()["code"], "validation_error")

        response = self.client.get("/api/v1/transactions/summary/?start_date=2024-02-30")
        self.assertEqual(response.status_code, 400)

    def test_listing_is_newest_first(self):
        first_id = self.rent().json()["id"]
        second_id = self.rent().json()["id"]
        RentalTransaction.objects.filter(pk=first_id).update(created_at=timezone.now() - timedelta(minutes=5))

        response = self.client.get("/api/v1/transactions/")

        self.assertEqual([row["id"] for row in response.json()], [second_id, first_id])

    def test_names_follow_the_live_user(self):
        self.rent()
        self.cashier.name = "Ravi Kumar"
        self.cashier.save()

        response = self.client.get("/api/v1/transactions/")

        self.assertEqual(response.json()[0]["cashier_name"], "Ravi Kumar")


class RentalSummaryTests(RentalTestMixin, TestCase):
    def test_summary_with_active_link(self):
        parent_id = self.rent().json()["id"]
        self.link(parent_id)

        response = self.client.get("/api/v1/transactions/summary/")

        self.assertEqual(response.status_code, 200)
        summary = response.json()
        self.assertEqual(summary["transaction_count"], 2)
        self.assertEqual(summary["linked_count"], 1)
        self.assertEqual(summary["total_sales"], "250.00")
        self.assertEqual(summary["advance_collected"], "500.00")
        self.assertEqual(summary["active_advance"], "350.00")
        self.assertEqual(summary["cash_to_hand_over"], "600.00")

    def test_summary_after_returns(self):
        parent_id = self.rent().json()["id"]
        self.link(parent_id)
        self.return_advance(
            parent_id,
            [{"type": "tube", "returned_good": 2}],
            [{"type": "locker", "returned_good": 1}],
        )
        lost_id = self.rent(tube=1, subtotal="50.00", advance="200.00").json()["id"]
        self.return_advance(lost_id, [{"type": "tube", "lost": 1, "deduction": "100.00"}])

        response = self.client.get("/api/v1/transactions/summary/")

        summary = response.json()
        self.assertEqual(summary["returned_count"], 2)
        self.assertEqual(summary["total_sales"], "300.00")
        self.assertEqual(summary["advance_returned"], "450.00")
        self.assertEqual(summary["deductions"], "100.00")
        self.assertEqual(summary["credit_applied"], "150.00")
        self.assertEqual(summary["active_advance"], "0.00")
        self.assertEqual(summary["cash_to_hand_over"], "400.00")

    def test_summary_is_scoped_to_cashier(self):
        self.rent()
        self.rent(user=self.other_cashier, advance="300.00")

        self.client.force_authenticate(user=self.other_cashier)
        response = self.client.get("/api/v1/transactions/summary/")

        self.assertEqual(response.json()["transaction_count"], 1)
        self.assertEqual(response.json()["advance_collected"], "300.00")


class RentalReportTests(RentalTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        damaged_id = self.rent(tube=2, locker=1, subtotal="200.00").json()["id"]
        self.return_advance(
            damaged_id,
            [
                {"type": "tube", "returned_good": 1, "returned_damaged": 1, "deduction": "40.00"},
                {"type": "locker", "lost": 1, "deduction": "60.00"},
            ],
        )
        self.rent(male_costume=1, tube=0, subtotal="100.00")
        self.damaged_id = damaged_id

    def test_cashier_cannot_view_reports(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/reports/damages/")

        self.assertEqual(response.status_code, 403)

    def test_damage_report(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/damages/")

        self.assertEqual(response.status_code, 200)
        report = response.json()
        self.assertEqual(report["total_damaged"], 1)
        self.assertEqual(report["total_lost"], 1)
        self.assertEqual(len(report["records"]), 1)
        self.assertEqual(report["records"][0]["transaction_id"], self.damaged_id)
        self.assertEqual(report["records"][0]["returned_by"], "Ravi")

    def test_damage_report_as_csv(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/damages/?format=csv")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response["Content-Type"].startswith("text/csv"))
        self.assertIn("damage_report.csv", response["Content-Disposition"])
        lines = response.content.decode().strip().splitlines()
        self.assertTrue(lines[0].startswith("receipt_number,"))
        self.assertEqual(len(lines), 3)

    def test_inventory_report(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/inventory/")

        rows = {row["type"]: row for row in response.json()["results"]}
        self.assertEqual(rows["tube"]["given_out"], 2)
        self.assertEqual(rows["tube"]["returned_good"], 1)
        self.assertEqual(rows["tube"]["returned_damaged"], 1)
        self.assertEqual(rows["locker"]["lost"], 1)
        self.assertEqual(rows["male_costume"]["still_out"], 1)
        self.assertEqual(rows["male_costume"]["returned_good"], 0)

    def test_inventory_report_as_csv(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/inventory/?format=csv")

        lines = response.content.decode().strip().splitlines()
        self.assertEqual(lines[0], "type,given_out,returned_good,returned_damaged,lost,still_out")
        self.assertEqual(len(lines), 6)


class CleanTransactionsCommandTests(RentalTestMixin, TestCase):
    def test_requires_confirmation(self):
        self.rent()

        with self.assertRaises(CommandError):
            call_command("clean_transactions", stdout=StringIO())

        self.assertEqual(RentalTransaction.objects.count(), 1)

    def test_removes_linked_rentals_tickets_and_sessions(self):
        parent_id = self.rent().json()["id"]
        self.link(parent_id)
        session = TicketCounterSession.objects.create(cashier=self.cashier, starting_tag="000001", next_tag=2)
        TicketTransaction.objects.create(
            customer_name="Kiran",
            customer_phone="9876543210",
            men_ticket=1,
            tag_numbers="000001",
            subtotal=Decimal("500.00"),
            total_due=Decimal("500.00"),
            payment_method="cash",
            cashier=self.cashier,
            cashier_name="Ravi",
            session=session,
        )
        out = StringIO()

        call_command("clean_transactions", "--yes", stdout=out)

        self.assertFalse(RentalTransaction.objects.exists())
        self.assertFalse(TicketTransaction.objects.exists())
        self.assertFalse(TicketCounterSession.objects.exists())
        self.assertIn("Transactions cleaned.", out.getvalue())
