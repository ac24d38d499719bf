from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import create_audit_log_from_request
from common.filters import filter_transactions
from common.permissions import AuthContext, RoleCapabilityPermission
from tickets.models import RECEIPT_PREFIX
from tickets.serializers import (
    TicketCounterSessionSerializer,
    TicketSessionOpenSerializer,
    TicketSessionReportSerializer,
    TicketSummarySerializer,
    TicketTransactionCreateSerializer,
    TicketTransactionSerializer,
)
from tickets.services import (
    build_ticket_summary,
    close_session,
    create_ticket_transaction,
    get_open_session,
    get_session_for,
    list_ticket_transactions,
    open_session,
    session_report,
    visible_ticket_transactions,
)


class TicketTransactionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = TicketTransactionSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "counter.access",
        "retrieve": "counter.access",
        "create": "counter.access",
        "summary": "counter.access",
    }
    pagination_class = None

    def get_auth(self):
        return AuthContext.from_request(self.request)

    def get_queryset(self):
        if self.action == "list":
            return list_ticket_transactions(self.get_auth(), self.request.query_params)
        return visible_ticket_transactions(self.get_auth())

    def create(self, request, *args, **kwargs):
        serializer = TicketTransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = create_ticket_transaction(self.get_auth(), serializer.validated_data)
        payload = TicketTransactionSerializer(txn).data
        create_audit_log_from_request(
            request,
            action="ticket_transaction.create",
            entity="ticket_transaction",
            entity_id=txn.id,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="summary")
    def summary(self, request):
        auth = self.get_auth()
        qs, start, end = filter_transactions(
            visible_ticket_transactions(auth),
            auth,
            request.query_params,
            receipt_prefix=RECEIPT_PREFIX,
            default_today=True,
        )
        payload = {"start": start, "end": end, **build_ticket_summary(qs)}
        return Response(TicketSummarySerializer(payload).data)


class TicketSessionOpenView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "counter.access"}

    def post(self, request):
        serializer = TicketSessionOpenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = open_session(
            AuthContext.from_request(request),
            serializer.validated_data["starting_tag"],
            serializer.validated_data.get("tags_received"),
        )
        payload = TicketCounterSessionSerializer(session).data
        create_audit_log_from_request(
            request,
            action="ticket_session.open",
            entity="ticket_session",
            entity_id=session.id,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED)


class TicketSessionCurrentView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "counter.access"}

    def get(self, request):
        auth = AuthContext.from_request(request)
        session = get_open_session(auth.user_id)
        if session is None:
            raise NotFound("No open ticket session.")
        return Response(TicketCounterSessionSerializer(session).data)


class TicketSessionCloseView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "counter.access"}

    def post(self, request, session_id):
        session = close_session(AuthContext.from_request(request), session_id)
        create_audit_log_from_request(
            request,
            action="ticket_session.close",
            entity="ticket_session",
            entity_id=session.id,
            after_snapshot={"closed_at": session.closed_at, "next_tag": f"{session.next_tag:06d}"},
        )
        return Response(TicketSessionReportSerializer(session_report(session)).data)


class TicketSessionReportView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "counter.access"}

    def get(self, request, session_id):
        session = get_session_for(AuthContext.from_request(request), session_id, capability="reports.view")
        return Response(TicketSessionReportSerializer(session_report(session)).data)
