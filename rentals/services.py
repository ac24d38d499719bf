import logging
import uuid
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from common.exceptions import Conflict
from common.filters import filter_transactions
from common.utils import is_truthy, to_money
from rentals.models import ITEM_TYPES, RECEIPT_PREFIX, RentalTransaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _item_label(item_type):
    return item_type.replace("_", " ").capitalize()


def _receipt(txn):
    return txn.receipt_number


def visible_rental_transactions(auth):
    qs = RentalTransaction.objects.select_related(
        "cashier",
        "advance_returned_by",
        "linked_transaction",
        "linked_transaction__cashier",
        "linked_transaction__advance_returned_by",
    )
    if not auth.can("transactions.view_all"):
        qs = qs.filter(cashier_id=auth.user_id)
    return qs


def list_rental_transactions(auth, params):
    scoped = visible_rental_transactions(auth)
    filtered, _, _ = filter_transactions(scoped, auth, params, receipt_prefix=RECEIPT_PREFIX)

    status = params.get("status")
    if status:
        if status not in RentalTransaction.Status.values:
            raise ValidationError({"status": f"Status must be one of: {', '.join(RentalTransaction.Status.values)}."})
        filtered = filtered.filter(status=status)

    results = filtered.filter(parent_transaction__isnull=True)
    if params.get("search") and is_truthy(params.get("include_linked")):
        # A search hit on a linked transaction surfaces its parent, which carries the child.
        matched_parent_ids = filtered.filter(parent_transaction__isnull=False).values("parent_transaction_id")
        results = scoped.filter(Q(pk__in=results.values("pk")) | Q(pk__in=matched_parent_ids))

    return results.order_by("-created_at")


def create_rental_transaction(auth, data):
    quantities = {item_type: data.get(item_type, 0) for item_type in ITEM_TYPES}
    is_vip = data.get("is_complimentary", False)
    if not is_vip and not any(quantities.values()):
        raise ValidationError({"items": "Select at least one item."})

    subtotal = to_money(data["subtotal"])
    advance = to_money(data.get("advance"))
    requested_total = data.get("total_due")
    parent_id = data.get("parent_transaction")

    with transaction.atomic():
        parent = None
        if parent_id:
            parent = RentalTransaction.objects.select_for_update().filter(pk=parent_id).first()
            if parent is None:
                raise NotFound("Parent transaction not found.")
            if parent.parent_transaction_id:
                raise ValidationError({"parent_transaction": "A linked transaction cannot be used as a parent."})
            if parent.status != RentalTransaction.Status.ACTIVE:
                raise Conflict(f"Advance for {_receipt(parent)} has already been returned.")
            if RentalTransaction.objects.filter(parent_transaction_id=parent.pk).exists():
                raise Conflict(f"{_receipt(parent)} already has a linked transaction.")
            if subtotal > parent.advance:
                excess = to_money(subtotal - parent.advance)
                raise ValidationError(
                    {
                        "subtotal": (
                            f"Credit of {subtotal} exceeds the available advance of {to_money(parent.advance)} "
                            f"on {_receipt(parent)} by {excess}."
                        )
                    }
                )
            # Paid from the parent's advance: nothing new is collected.
            advance = ZERO
            total_due = subtotal
        else:
            total_due = advance + (ZERO if is_vip else subtotal)
            if requested_total is not None and to_money(requested_total) != total_due:
                raise ValidationError(
                    {"total_due": f"Total due must be {total_due} (advance {advance} plus item charges)."}
                )

        try:
            with transaction.atomic():
                txn = RentalTransaction.objects.create(
                    customer_name=data["customer_name"].strip(),
                    customer_phone=data["customer_phone"].strip(),
                    subtotal=subtotal,
                    advance=advance,
                    total_due=total_due,
                    is_complimentary=is_vip,
                    cashier_id=auth.user_id,
                    cashier_name=auth.name,
                    parent_transaction=parent,
                    **quantities,
                )
        except IntegrityError:
            raise Conflict(f"{_receipt(parent)} already has a linked transaction.")

    logger.info(
        "rental_transaction_created",
        extra={
            "transaction_id": txn.id,
            "linked_transaction_id": parent.id if parent else None,
            "user_id": auth.user_id,
            "amount": str(txn.total_due),
        },
    )
    return txn


def _validate_breakdown(txn, details, *, field, require_deductions):
    """
    Check an itemized return against what was rented.

    Every rented unit must be accounted for as good, damaged or lost. Returns the
    per-item rows to store and the summed deduction.
    """
    entries = {entry["type"]: entry for entry in details.get("items", [])}
    errors = {}
    rows = []
    total_deduction = ZERO

    for item_type in ITEM_TYPES:
        rented = getattr(txn, item_type)
        entry = entries.get(item_type, {})
        good = entry.get("returned_good", 0)
        damaged = entry.get("returned_damaged", 0)
        lost = entry.get("lost", 0)
        deduction = to_money(entry.get("deduction"))
        received = good + damaged + lost

        if received != rented:
            if rented == 0:
                errors[item_type] = f"{_item_label(item_type)}: not part of {_receipt(txn)}, expected 0 but received {received}."
            else:
                errors[item_type] = (
                    f"{_item_label(item_type)}: expected {rented} but received {received} "
                    f"(good {good}, damaged {damaged}, lost {lost})."
                )
            continue
        if require_deductions and (damaged or lost) and deduction <= ZERO:
            errors[item_type] = f"{_item_label(item_type)}: damaged or lost items need a deduction."
            continue
        if rented == 0 and deduction > ZERO:
            errors[item_type] = f"{_item_label(item_type)}: not part of {_receipt(txn)}, deduction must be 0."
            continue
        if rented == 0:
            continue

        rows.append(
            {
                "type": item_type,
                "rented": rented,
                "returned_good": good,
                "returned_damaged": damaged,
                "lost": lost,
                "deduction": deduction,
            }
        )
        total_deduction += deduction

    if errors:
        raise ValidationError({field: errors})
    return rows, to_money(total_deduction)


def return_advance(auth, transaction_id, return_details, linked_return_details=None):
    """Settle a rental and its linked transaction, if any, in one atomic update."""
    try:
        transaction_id = uuid.UUID(str(transaction_id))
    except ValueError:
        raise NotFound("Transaction not found.")

    with transaction.atomic():
        txn = RentalTransaction.objects.select_for_update().filter(pk=transaction_id).first()
        if txn is None:
            raise NotFound("Transaction not found.")
        if txn.parent_transaction_id:
            parent_receipt = f"{RECEIPT_PREFIX}{txn.parent_transaction_id.hex[-8:].upper()}"
            raise ValidationError(
                f"{_receipt(txn)} is a linked transaction. Return the parent transaction {parent_receipt} instead."
            )
        if txn.status == RentalTransaction.Status.ADVANCE_RETURNED:
            raise Conflict(f"Advance already returned for {_receipt(txn)}.")

        child = RentalTransaction.objects.select_for_update().filter(parent_transaction_id=txn.pk).first()

        parent_rows, parent_deduction = _validate_breakdown(
            txn,
            return_details,
            field="return_details",
            require_deductions=not txn.is_complimentary,
        )

        child_rows, child_deduction, credit = [], ZERO, ZERO
        if child is not None:
            if not linked_return_details:
                raise ValidationError(
                    {"linked_return_details": f"Return details for linked transaction {_receipt(child)} are required."}
                )
            child_rows, child_deduction = _validate_breakdown(
                child,
                linked_return_details,
                field="linked_return_details",
                require_deductions=False,
            )
            credit = to_money(child.subtotal)

        actual_amount = to_money(txn.advance - credit - parent_deduction - child_deduction)
        if actual_amount < ZERO:
            raise ValidationError(
                f"Deduction exceeds remaining advance: advance {to_money(txn.advance)}, credit used {credit}, "
                f"deductions {to_money(parent_deduction + child_deduction)}."
            )

        returned_at = timezone.now()
        update_fields = [
            "status",
            "advance_returned_at",
            "advance_returned_by",
            "advance_returned_by_name",
            "return_details",
            "total_deduction",
            "credit_applied",
            "actual_amount_returned",
        ]

        txn.status = RentalTransaction.Status.ADVANCE_RETURNED
        txn.advance_returned_at = returned_at
        txn.advance_returned_by_id = auth.user_id
        txn.advance_returned_by_name = auth.name
        txn.return_details = {
            "items": parent_rows,
            "total_deduction": parent_deduction,
            "notes": return_details.get("notes", ""),
        }
        txn.total_deduction = parent_deduction
        txn.credit_applied = credit
        txn.actual_amount_returned = actual_amount
        txn.save(update_fields=update_fields)

        if child is not None:
            child.status = RentalTransaction.Status.ADVANCE_RETURNED
            child.advance_returned_at = returned_at
            child.advance_returned_by_id = auth.user_id
            child.advance_returned_by_name = auth.name
            child.return_details = {
                "items": child_rows,
                "total_deduction": child_deduction,
                "notes": linked_return_details.get("notes", ""),
            }
            child.total_deduction = child_deduction
            child.credit_applied = ZERO
            child.actual_amount_returned = ZERO
            child.save(update_fields=update_fields)

    logger.info(
        "advance_returned",
        extra={
            "transaction_id": txn.id,
            "linked_transaction_id": child.id if child else None,
            "user_id": auth.user_id,
            "amount": str(actual_amount),
        },
    )
    return txn, child


def build_rental_summary(qs):
    returned = Q(status=RentalTransaction.Status.ADVANCE_RETURNED)
    active = Q(status=RentalTransaction.Status.ACTIVE)
    is_child = Q(parent_transaction__isnull=False)

    totals = qs.aggregate(
        transaction_count=Count("id"),
        linked_count=Count("id", filter=is_child),
        returned_count=Count("id", filter=returned & ~is_child),
        total_sales=Coalesce(Sum(F("total_due") - F("advance")), ZERO),
        advance_collected=Coalesce(Sum("advance"), ZERO),
        advance_returned=Coalesce(
            Sum(Coalesce("actual_amount_returned", "advance"), filter=returned & ~is_child),
            ZERO,
        ),
        deductions=Coalesce(Sum("total_deduction", filter=returned), ZERO),
        credit_applied=Coalesce(Sum("subtotal", filter=is_child), ZERO),
        held_advance=Coalesce(Sum("advance", filter=active), ZERO),
        pending_credit=Coalesce(Sum("linked_transaction__subtotal", filter=active), ZERO),
    )

    # Credit already spent on a linked rental is revenue, not refundable advance.
    active_advance = to_money(totals.pop("held_advance") - totals.pop("pending_credit"))
    summary = {key: to_money(value) if isinstance(value, Decimal) else value for key, value in totals.items()}
    summary["active_advance"] = active_advance
    summary["cash_to_hand_over"] = to_money(summary["total_sales"] + active_advance + summary["deductions"])
    return summary
