import json

from django.core.serializers.json import DjangoJSONEncoder

from core.models import AuditLog


def get_request_id(request):
    return getattr(request, "request_id", None) or request.headers.get("X-Request-ID")


def snapshot(value):
    """Round-trip through JSON so Decimals, UUIDs and datetimes land in the JSONField as strings."""
    if value is None:
        return None
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def create_audit_log(*, actor=None, action, entity, entity_id=None, before=None, after=None, request_id=None):
    return AuditLog.objects.create(
        actor=actor,
        action=action,
        entity=entity,
        entity_id="" if entity_id in (None, "") else str(entity_id)[:64],
        before_snapshot=snapshot(before),
        after_snapshot=snapshot(after),
        request_id=request_id,
    )


def create_audit_log_from_request(request, *, action, entity, entity_id=None, before_snapshot=None, after_snapshot=None):
    user = getattr(request, "user", None)
    return create_audit_log(
        actor=user if user is not None and user.is_authenticated else None,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before=before_snapshot,
        after=after_snapshot,
        request_id=get_request_id(request),
    )
