import logging
import uuid

from django.contrib.auth import get_user_model
from django.db import connections
from django.utils import timezone
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.views import TokenObtainPairView

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from common.renderers import CSVRenderer
from common.filters import date_range_from_params
from core.models import AuditLog
from core.serializers import (
    AuditLogSerializer,
    EmailOrUsernameTokenObtainPairSerializer,
    UserRegistrationSerializer,
    UserSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


def _user_snapshot(user):
    return {"id": str(user.id), "email": user.email, "name": user.name, "role": user.role}


class RegisterView(generics.CreateAPIView):
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def perform_create(self, serializer):
        user = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="user.register",
            entity="user",
            entity_id=user.id,
            after_snapshot=_user_snapshot(user),
        )


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class UserViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = User.objects.order_by("email")
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "user.manage",
        "retrieve": "user.manage",
        "create": "user.manage",
        "update": "user.manage",
        "partial_update": "user.manage",
        "destroy": "user.manage",
        "me": None,
    }

    def get_queryset(self):
        qs = super().get_queryset()
        role = self.request.query_params.get("role")
        if role == "none":
            qs = qs.filter(role__isnull=True)
        elif role:
            qs = qs.filter(role=role)
        return qs

    def perform_create(self, serializer):
        user = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="user.create",
            entity="user",
            entity_id=user.id,
            after_snapshot=_user_snapshot(user),
        )

    def perform_update(self, serializer):
        before_snapshot = _user_snapshot(serializer.instance)
        if (
            serializer.instance.pk == self.request.user.pk
            and "role" in serializer.validated_data
            and serializer.validated_data["role"] != User.Role.ADMIN
        ):
            raise ValidationError({"role": "You cannot remove your own admin role."})
        user = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="user.role_change" if before_snapshot["role"] != user.role else "user.update",
            entity="user",
            entity_id=user.id,
            before_snapshot=before_snapshot,
            after_snapshot=_user_snapshot(user),
        )

    def perform_destroy(self, instance):
        # Accounts are kept for receipt history; removing a user only revokes access.
        if instance.pk == self.request.user.pk:
            raise ValidationError("You cannot remove your own admin role.")
        before_snapshot = _user_snapshot(instance)
        instance.role = None
        instance.save(update_fields=["role", "updated_at"])
        create_audit_log_from_request(
            self.request,
            action="user.role_clear",
            entity="user",
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=_user_snapshot(instance),
        )

    @action(detail=False, methods=["get"], url_path="me")
    def me(self, request):
        return Response(self.get_serializer(request.user).data)


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("actor")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "admin.records.manage", "retrieve": "admin.records.manage", "export": "admin.records.manage"}

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")
        params = self.request.query_params

        start, end = date_range_from_params(params)
        if start:
            qs = qs.filter(created_at__gte=start)
        if end:
            qs = qs.filter(created_at__lte=end)
        if params.get("actor_id"):
            try:
                qs = qs.filter(actor_id=uuid.UUID(params["actor_id"]))
            except ValueError:
                raise ValidationError({"actor_id": "Must be a valid user id."})
        if params.get("action"):
            qs = qs.filter(action=params["action"])
        if params.get("entity"):
            qs = qs.filter(entity=params["entity"])
        return qs

    @action(detail=False, methods=["get"], url_path="export", renderer_classes=[CSVRenderer])
    def export(self, request):
        rows = [
            {
                "id": log.id,
                "created_at": timezone.localtime(log.created_at).isoformat(),
                "actor": getattr(log.actor, "email", ""),
                "action": log.action,
                "entity": log.entity,
                "entity_id": log.entity_id,
                "request_id": log.request_id or "",
            }
            for log in self.get_queryset()
        ]
        response = Response(rows)
        response["Content-Disposition"] = 'attachment; filename="audit-logs.csv"'
        return response


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": getattr(request, "request_id", None)})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except Exception as exc:
        logger.exception("readiness_check_failed")
        return Response(
            {"status": "error", "request_id": getattr(request, "request_id", None), "detail": str(exc)},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return Response({"status": "ready", "request_id": getattr(request, "request_id", None)})
