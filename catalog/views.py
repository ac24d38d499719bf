from rest_framework import mixins, viewsets
from rest_framework.permissions import IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.views import APIView

from catalog.models import Price, Setting
from catalog.serializers import PriceSerializer, SettingSerializer
from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission, user_has_capability
from common.utils import is_truthy


class PriceViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Price.objects.select_related("updated_by")
    serializer_class = PriceSerializer
    pagination_class = None
    # Counters load prices before checkout, so reads stay open.
    permission_classes = [IsAuthenticatedOrReadOnly, RoleCapabilityPermission]
    permission_action_map = {"update": "catalog.manage", "partial_update": "catalog.manage"}

    def get_queryset(self):
        qs = super().get_queryset()
        include_inactive = self.action != "list" or is_truthy(self.request.query_params.get("include_inactive"))
        if include_inactive and user_has_capability(self.request.user, "catalog.manage"):
            return qs
        return qs.filter(is_active=True)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save(updated_by=self.request.user)
        create_audit_log_from_request(
            self.request,
            action="price.update",
            entity="price",
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(instance).data,
        )


class SettingsView(APIView):
    """Key/value settings as a flat object; writes upsert a single key."""

    permission_classes = [IsAuthenticatedOrReadOnly, RoleCapabilityPermission]
    permission_action_map = {"put": "catalog.manage", "patch": "catalog.manage"}

    def get(self, request):
        return Response({setting.key: setting.value for setting in Setting.objects.all()})

    def put(self, request):
        serializer = SettingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        key = serializer.validated_data["key"]
        value = serializer.validated_data["value"]

        existing = Setting.objects.filter(key=key).first()
        before_snapshot = {"key": key, "value": existing.value} if existing else None
        setting, _ = Setting.objects.update_or_create(
            key=key,
            defaults={"value": value, "updated_by": request.user},
        )
        create_audit_log_from_request(
            request,
            action="setting.update",
            entity="setting",
            entity_id=key,
            before_snapshot=before_snapshot,
            after_snapshot={"key": key, "value": value},
        )
        return Response(SettingSerializer(setting).data)

    patch = put
