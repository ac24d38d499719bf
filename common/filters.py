import uuid

from django.db.models import Q, Value
from django.db.models.functions import StrIndex
from django.db.models.lookups import GreaterThan
from rest_framework.exceptions import ValidationError

from common.utils import local_day_bounds, local_today, parse_local_bound


def date_range_from_params(params, *, default_today=False):
    start = parse_local_bound(params.get("start_date"), field="start_date")
    end = parse_local_bound(params.get("end_date"), field="end_date", end=True)
    if start is None and end is None and default_today:
        start, end = local_day_bounds(local_today())
    if start and end and start > end:
        raise ValidationError({"start_date": "start_date must be before or equal to end_date."})
    return start, end


def _contains(field, term):
    # instr/strpos compare exactly on every backend; SQLite's LIKE folds case.
    return Q(GreaterThan(StrIndex(field, Value(term)), 0))


def search_filter(term, fields, *, receipt_prefix=""):
    """Case-sensitive OR of substring matches over `fields` plus the receipt number."""
    term = term.strip()
    condition = Q()
    for field in fields:
        condition |= _contains(field, term)

    receipt_term = term.upper()
    if receipt_prefix and receipt_term.startswith(receipt_prefix):
        receipt_term = receipt_term[len(receipt_prefix):]
    if receipt_term:
        condition |= _contains("receipt_no", receipt_term)

    try:
        condition |= Q(pk=uuid.UUID(term))
    except ValueError:
        pass
    return condition


def filter_transactions(qs, auth, params, *, receipt_prefix="", default_today=False):
    """Date, search and cashier filters shared by the counter listings.

    `cashier_id` is honoured for admins only; callers pass a queryset already
    scoped to the cashier's own rows for everyone else.
    """
    cashier_id = params.get("cashier_id")
    if cashier_id and auth.can("transactions.view_all"):
        try:
            qs = qs.filter(cashier_id=uuid.UUID(cashier_id))
        except ValueError:
            raise ValidationError({"cashier_id": "Must be a valid user id."})

    start, end = date_range_from_params(params, default_today=default_today)
    if start:
        qs = qs.filter(created_at__gte=start)
    if end:
        qs = qs.filter(created_at__lte=end)

    search = (params.get("search") or "").strip()
    if search:
        qs = qs.filter(search_filter(search, ["customer_phone", "customer_name"], receipt_prefix=receipt_prefix))
    return qs, start, end
