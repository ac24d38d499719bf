from decimal import Decimal

from django.utils import timezone
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.settings import api_settings
from rest_framework.views import APIView

from common.filters import filter_transactions
from common.permissions import AuthContext, RoleCapabilityPermission
from common.renderers import CSVRenderer
from common.utils import to_money
from rentals.models import ITEM_TYPES, RECEIPT_PREFIX, RentalTransaction
from rentals.services import visible_rental_transactions


class BaseReportView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "reports.view"}
    renderer_classes = [*api_settings.DEFAULT_RENDERER_CLASSES, CSVRenderer]

    def _transactions(self, request):
        auth = AuthContext.from_request(request)
        qs, start, end = filter_transactions(
            visible_rental_transactions(auth),
            auth,
            request.query_params,
            receipt_prefix=RECEIPT_PREFIX,
        )
        return qs.order_by("created_at"), start, end

    def _wants_csv(self, request):
        return request.query_params.get("format") == "csv"

    def _csv_response(self, filename, rows):
        response = Response(rows)
        response["Content-Disposition"] = f'attachment; filename="{filename}"'
        return response


def _returned_items(txn):
    details = txn.return_details or {}
    return details.get("items", [])


class DamageReportView(BaseReportView):
    """Damaged and lost items from settled rentals, with the deductions taken for them."""

    def get(self, request):
        qs, start, end = self._transactions(request)
        qs = qs.filter(status=RentalTransaction.Status.ADVANCE_RETURNED)

        totals = {item_type: {"damaged": 0, "lost": 0, "deduction": Decimal("0")} for item_type in ITEM_TYPES}
        records = []
        for txn in qs:
            damaged_items = []
            for item in _returned_items(txn):
                damaged = int(item.get("returned_damaged", 0))
                lost = int(item.get("lost", 0))
                if not damaged and not lost:
                    continue
                deduction = to_money(item.get("deduction"))
                bucket = totals[item["type"]]
                bucket["damaged"] += damaged
                bucket["lost"] += lost
                bucket["deduction"] += deduction
                damaged_items.append({"type": item["type"], "damaged": damaged, "lost": lost, "deduction": deduction})

            if damaged_items:
                records.append(
                    {
                        "transaction_id": str(txn.id),
                        "receipt_number": txn.receipt_number,
                        "customer_name": txn.customer_name,
                        "customer_phone": txn.customer_phone,
                        "created_at": timezone.localtime(txn.created_at),
                        "advance_returned_at": timezone.localtime(txn.advance_returned_at),
                        "returned_by": (txn.advance_returned_by.name if txn.advance_returned_by_id else "")
                        or txn.advance_returned_by_name,
                        "items": damaged_items,
                        "total_deduction": to_money(txn.total_deduction),
                        "notes": (txn.return_details or {}).get("notes", ""),
                    }
                )

        if self._wants_csv(request):
            rows = [
                {
                    "receipt_number": record["receipt_number"],
                    "customer_name": record["customer_name"],
                    "customer_phone": record["customer_phone"],
                    "advance_returned_at": record["advance_returned_at"],
                    "item": item["type"],
                    "damaged": item["damaged"],
                    "lost": item["lost"],
                    "deduction": item["deduction"],
                }
                for record in records
                for item in record["items"]
            ]
            return self._csv_response("damage_report.csv", rows)

        return Response(
            {
                "start": start,
                "end": end,
                "totals": [
                    {"type": item_type, **{key: (to_money(value) if key == "deduction" else value) for key, value in bucket.items()}}
                    for item_type, bucket in totals.items()
                ],
                "total_damaged": sum(bucket["damaged"] for bucket in totals.values()),
                "total_lost": sum(bucket["lost"] for bucket in totals.values()),
                "total_deductions": to_money(sum(record["total_deduction"] for record in records)),
                "records": records,
            }
        )


class InventoryReportView(BaseReportView):
    """Per item type: units handed out, back in good or damaged condition, lost and still out."""

    def get(self, request):
        qs, start, end = self._transactions(request)

        rows = {
            item_type: {"type": item_type, "given_out": 0, "returned_good": 0, "returned_damaged": 0, "lost": 0, "still_out": 0}
            for item_type in ITEM_TYPES
        }
        for txn in qs:
            for item_type in ITEM_TYPES:
                quantity = getattr(txn, item_type)
                rows[item_type]["given_out"] += quantity
                if txn.status == RentalTransaction.Status.ACTIVE:
                    rows[item_type]["still_out"] += quantity
            for item in _returned_items(txn):
                row = rows.get(item.get("type"))
                if row is None:
                    continue
                row["returned_good"] += int(item.get("returned_good", 0))
                row["returned_damaged"] += int(item.get("returned_damaged", 0))
                row["lost"] += int(item.get("lost", 0))

        results = list(rows.values())
        if self._wants_csv(request):
            return self._csv_response("inventory_report.csv", results)
        return Response({"start": start, "end": end, "results": results})
