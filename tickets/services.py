import logging
import re
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from common.exceptions import Conflict
from common.filters import filter_transactions
from common.utils import to_money
from tickets.models import RECEIPT_PREFIX, TICKET_TYPES, TicketCounterSession, TicketTransaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TAG_PATTERN = re.compile(r"^\d{6}$")
MAX_TAG = 999999


def format_tag(number):
    return f"{number:06d}"


def parse_tag_numbers(raw_value):
    if not raw_value:
        return []
    if isinstance(raw_value, (list, tuple)):
        tags = [str(tag).strip() for tag in raw_value]
    else:
        tags = [tag.strip() for tag in str(raw_value).split(",")]
    tags = [tag for tag in tags if tag]

    invalid = [tag for tag in tags if not TAG_PATTERN.match(tag)]
    if invalid:
        raise ValidationError({"tag_numbers": f"Tag numbers must be 6 digits: {', '.join(invalid)}."})
    if len(set(tags)) != len(tags):
        raise ValidationError({"tag_numbers": "Tag numbers must not repeat."})
    return tags


def get_open_session(user_id, *, for_update=False):
    qs = TicketCounterSession.objects.filter(cashier_id=user_id, closed_at__isnull=True)
    if for_update:
        qs = qs.select_for_update()
    return qs.first()


def visible_ticket_transactions(auth):
    qs = TicketTransaction.objects.select_related("cashier")
    if not auth.can("transactions.view_all"):
        qs = qs.filter(cashier_id=auth.user_id)
    return qs


def list_ticket_transactions(auth, params):
    qs, _, _ = filter_transactions(visible_ticket_transactions(auth), auth, params, receipt_prefix=RECEIPT_PREFIX)

    payment_method = params.get("payment_method")
    if payment_method:
        if payment_method not in TicketTransaction.PaymentMethod.values:
            raise ValidationError({"payment_method": "Payment method must be upi, cash or split."})
        qs = qs.filter(payment_method=payment_method)
    return qs.order_by("-created_at")


def create_ticket_transaction(auth, data):
    counts = {ticket_type: data.get(ticket_type, 0) for ticket_type in TICKET_TYPES}
    ticket_count = sum(counts.values())
    is_vip = data.get("is_complimentary", False)
    if not is_vip and ticket_count == 0:
        raise ValidationError({"tickets": "At least one ticket is required."})

    subtotal = to_money(data["subtotal"])
    total_due = ZERO if is_vip else subtotal
    requested_total = data.get("total_due")
    if requested_total is not None and to_money(requested_total) != total_due:
        raise ValidationError({"total_due": f"Total due must be {total_due}."})

    payment_method = data["payment_method"]
    split_upi = split_cash = ZERO
    if payment_method == TicketTransaction.PaymentMethod.SPLIT:
        split_upi = to_money(data.get("split_upi_amount"))
        split_cash = to_money(data.get("split_cash_amount"))
        if split_upi + split_cash != total_due:
            raise ValidationError(
                {"split_upi_amount": f"UPI and cash parts must add up to {total_due} (received {split_upi + split_cash})."}
            )

    tags = parse_tag_numbers(data.get("tag_numbers"))
    if tags and len(tags) != ticket_count:
        raise ValidationError({"tag_numbers": f"Expected {ticket_count} tag number(s) but received {len(tags)}."})

    with transaction.atomic():
        session = get_open_session(auth.user_id, for_update=True)
        if session is not None:
            if not tags and ticket_count:
                last_tag = session.next_tag + ticket_count - 1
                if last_tag > MAX_TAG:
                    raise ValidationError({"tag_numbers": "Tag numbers are exhausted; start a new session."})
                tags = [format_tag(session.next_tag + offset) for offset in range(ticket_count)]
            if tags:
                highest = max(int(tag) for tag in tags)
                if highest >= session.next_tag:
                    session.next_tag = highest + 1
                    session.save(update_fields=["next_tag"])

        txn = TicketTransaction.objects.create(
            customer_name=data["customer_name"].strip(),
            customer_phone=data["customer_phone"].strip(),
            vehicle_number=(data.get("vehicle_number") or "").strip(),
            tag_numbers=",".join(tags),
            subtotal=subtotal,
            total_due=total_due,
            payment_method=payment_method,
            split_upi_amount=split_upi,
            split_cash_amount=split_cash,
            is_complimentary=is_vip,
            cashier_id=auth.user_id,
            cashier_name=auth.name,
            session=session,
            **counts,
        )

    logger.info(
        "ticket_transaction_created",
        extra={
            "transaction_id": txn.id,
            "session_id": session.id if session else None,
            "user_id": auth.user_id,
            "amount": str(txn.total_due),
        },
    )
    return txn


def build_ticket_summary(qs):
    vip = Q(is_complimentary=True)
    upi = Q(payment_method=TicketTransaction.PaymentMethod.UPI)
    cash = Q(payment_method=TicketTransaction.PaymentMethod.CASH)
    split = Q(payment_method=TicketTransaction.PaymentMethod.SPLIT)

    totals = qs.aggregate(
        transaction_count=Count("id"),
        men_count=Coalesce(Sum("men_ticket"), 0),
        women_count=Coalesce(Sum("women_ticket"), 0),
        child_count=Coalesce(Sum("child_ticket"), 0),
        vip_count=Count("id", filter=vip),
        vip_value=Coalesce(Sum("subtotal", filter=vip), ZERO),
        upi_count=Count("id", filter=upi & ~vip),
        cash_count=Count("id", filter=cash & ~vip),
        split_count=Count("id", filter=split & ~vip),
        upi_only_amount=Coalesce(Sum("total_due", filter=upi), ZERO),
        cash_only_amount=Coalesce(Sum("total_due", filter=cash), ZERO),
        split_amount=Coalesce(Sum("total_due", filter=split), ZERO),
        split_upi_amount=Coalesce(Sum("split_upi_amount", filter=split), ZERO),
        split_cash_amount=Coalesce(Sum("split_cash_amount", filter=split), ZERO),
        total_sales=Coalesce(Sum("total_due"), ZERO),
    )

    summary = {key: to_money(value) if isinstance(value, Decimal) else value for key, value in totals.items()}
    summary["ticket_count"] = summary["men_count"] + summary["women_count"] + summary["child_count"]
    # Split payments are counted into the UPI and cash drawers by their parts.
    summary["upi_amount"] = to_money(summary.pop("upi_only_amount") + summary["split_upi_amount"])
    summary["cash_amount"] = to_money(summary.pop("cash_only_amount") + summary["split_cash_amount"])
    return summary


def open_session(auth, starting_tag, tags_received=None):
    if get_open_session(auth.user_id) is not None:
        raise Conflict("A ticket session is already open. Close it before starting a new one.")
    try:
        with transaction.atomic():
            session = TicketCounterSession.objects.create(
                cashier_id=auth.user_id,
                starting_tag=starting_tag,
                next_tag=int(starting_tag),
                tags_received=tags_received,
            )
    except IntegrityError:
        raise Conflict("A ticket session is already open. Close it before starting a new one.")

    logger.info("ticket_session_opened", extra={"session_id": session.id, "user_id": auth.user_id})
    return session


def get_session_for(auth, session_id, *, capability):
    session = TicketCounterSession.objects.select_related("cashier").filter(id=session_id).first()
    if session is None:
        raise NotFound("Ticket session not found.")
    if session.cashier_id != auth.user_id and not auth.can(capability):
        raise PermissionDenied("You can only access your own ticket session.")
    return session


def close_session(auth, session_id):
    with transaction.atomic():
        session = get_session_for(auth, session_id, capability="session.close.override")
        session = TicketCounterSession.objects.select_for_update().get(pk=session.pk)
        if session.closed_at is not None:
            raise Conflict("Ticket session is already closed.")
        session.closed_at = timezone.now()
        session.save(update_fields=["closed_at"])

    logger.info("ticket_session_closed", extra={"session_id": session.id, "user_id": auth.user_id})
    return session


def session_report(session):
    transactions = session.transactions.all()
    used_tags = sorted({tag for txn in transactions for tag in txn.tag_list})

    unused_tags = None
    if session.tags_received:
        issued_range = range(int(session.starting_tag), int(session.starting_tag) + session.tags_received)
        used_numbers = {int(tag) for tag in used_tags}
        unused_tags = sum(1 for number in issued_range if number not in used_numbers)

    return {
        "session": session,
        "tags_used": len(used_tags),
        "first_tag_used": used_tags[0] if used_tags else None,
        "last_tag_used": used_tags[-1] if used_tags else None,
        "next_tag": format_tag(session.next_tag),
        "unused_tags": unused_tags,
        "summary": build_ticket_summary(transactions),
    }
