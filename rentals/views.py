from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.filters import filter_transactions
from common.permissions import AuthContext, RoleCapabilityPermission
from rentals.models import RECEIPT_PREFIX
from rentals.serializers import (
    RentalSummarySerializer,
    RentalTransactionCreateSerializer,
    RentalTransactionSerializer,
    RentalTransactionWithLinkSerializer,
    ReturnAdvanceSerializer,
)
from rentals.services import (
    build_rental_summary,
    create_rental_transaction,
    list_rental_transactions,
    return_advance,
    visible_rental_transactions,
)


class RentalTransactionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = RentalTransactionWithLinkSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "counter.access",
        "retrieve": "counter.access",
        "create": "counter.access",
        "return_advance": "counter.access",
        "summary": "counter.access",
    }
    # The counters filter and sum the whole list client-side.
    pagination_class = None

    def get_auth(self):
        return AuthContext.from_request(self.request)

    def get_queryset(self):
        if self.action == "list":
            return list_rental_transactions(self.get_auth(), self.request.query_params)
        return visible_rental_transactions(self.get_auth())

    def create(self, request, *args, **kwargs):
        serializer = RentalTransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = create_rental_transaction(self.get_auth(), serializer.validated_data)
        payload = RentalTransactionSerializer(txn).data
        create_audit_log_from_request(
            request,
            action="rental_transaction.create",
            entity="rental_transaction",
            entity_id=txn.id,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["patch"], url_path="return-advance")
    def return_advance(self, request, pk=None):
        serializer = ReturnAdvanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn, child = return_advance(
            self.get_auth(),
            pk,
            serializer.validated_data["return_details"],
            serializer.validated_data.get("linked_return_details"),
        )
        payload = RentalTransactionWithLinkSerializer(txn).data
        create_audit_log_from_request(
            request,
            action="rental_transaction.return_advance",
            entity="rental_transaction",
            entity_id=txn.id,
            after_snapshot={
                "status": txn.status,
                "total_deduction": txn.total_deduction,
                "credit_applied": txn.credit_applied,
                "actual_amount_returned": txn.actual_amount_returned,
                "linked_transaction_id": child.id if child else None,
            },
        )
        return Response(payload)

    @action(detail=False, methods=["get"], url_path="summary")
    def summary(self, request):
        auth = self.get_auth()
        qs, start, end = filter_transactions(
            visible_rental_transactions(auth),
            auth,
            request.query_params,
            receipt_prefix=RECEIPT_PREFIX,
            default_today=True,
        )
        payload = {"start": start, "end": end, **build_rental_summary(qs)}
        return Response(RentalSummarySerializer(payload).data)
