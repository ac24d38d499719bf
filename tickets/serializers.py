from decimal import Decimal

from rest_framework import serializers

from tickets.models import TICKET_TYPES, TicketCounterSession, TicketTransaction

ZERO = Decimal("0")


def _money_field(**kwargs):
    return serializers.DecimalField(max_digits=12, decimal_places=2, min_value=ZERO, **kwargs)


class TicketTransactionCreateSerializer(serializers.Serializer):
    customer_name = serializers.CharField(
        max_length=255,
        error_messages={"required": "Customer name is required.", "blank": "Customer name is required."},
    )
    customer_phone = serializers.CharField(
        max_length=32,
        error_messages={"required": "Customer phone is required.", "blank": "Customer phone is required."},
    )
    vehicle_number = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    men_ticket = serializers.IntegerField(min_value=0, default=0)
    women_ticket = serializers.IntegerField(min_value=0, default=0)
    child_ticket = serializers.IntegerField(min_value=0, default=0)
    tag_numbers = serializers.CharField(required=False, allow_blank=True, default="")
    subtotal = _money_field()
    total_due = _money_field(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=TicketTransaction.PaymentMethod.choices)
    split_upi_amount = _money_field(required=False, default=ZERO)
    split_cash_amount = _money_field(required=False, default=ZERO)
    is_complimentary = serializers.BooleanField(default=False)


class TicketTransactionSerializer(serializers.ModelSerializer):
    receipt_number = serializers.CharField(read_only=True)
    cashier_name = serializers.SerializerMethodField()
    ticket_count = serializers.IntegerField(read_only=True)
    tag_list = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = TicketTransaction
        fields = [
            "id",
            "receipt_no",
            "receipt_number",
            "customer_name",
            "customer_phone",
            "vehicle_number",
            *TICKET_TYPES,
            "ticket_count",
            "tag_numbers",
            "tag_list",
            "subtotal",
            "total_due",
            "payment_method",
            "split_upi_amount",
            "split_cash_amount",
            "is_complimentary",
            "cashier",
            "cashier_name",
            "session",
            "created_at",
        ]
        read_only_fields = fields

    def get_cashier_name(self, obj):
        live_name = obj.cashier.name if obj.cashier_id else ""
        return live_name or obj.cashier_name


class TicketSessionOpenSerializer(serializers.Serializer):
    starting_tag = serializers.RegexField(
        r"^\d{6}$",
        error_messages={"invalid": "Starting tag must be exactly 6 digits."},
    )
    tags_received = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class TicketCounterSessionSerializer(serializers.ModelSerializer):
    cashier_name = serializers.CharField(source="cashier.display_name", read_only=True)
    is_open = serializers.BooleanField(read_only=True)
    next_tag = serializers.SerializerMethodField()

    class Meta:
        model = TicketCounterSession
        fields = [
            "id",
            "cashier",
            "cashier_name",
            "opened_at",
            "closed_at",
            "is_open",
            "starting_tag",
            "next_tag",
            "tags_received",
        ]
        read_only_fields = fields

    def get_next_tag(self, obj):
        return f"{obj.next_tag:06d}"


class TicketSummarySerializer(serializers.Serializer):
    start = serializers.DateTimeField(allow_null=True, required=False)
    end = serializers.DateTimeField(allow_null=True, required=False)
    transaction_count = serializers.IntegerField()
    ticket_count = serializers.IntegerField()
    men_count = serializers.IntegerField()
    women_count = serializers.IntegerField()
    child_count = serializers.IntegerField()
    vip_count = serializers.IntegerField()
    vip_value = serializers.DecimalField(max_digits=14, decimal_places=2)
    upi_count = serializers.IntegerField()
    cash_count = serializers.IntegerField()
    split_count = serializers.IntegerField()
    upi_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    cash_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    split_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    split_upi_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    split_cash_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_sales = serializers.DecimalField(max_digits=14, decimal_places=2)


class TicketSessionReportSerializer(serializers.Serializer):
    session = TicketCounterSessionSerializer()
    tags_used = serializers.IntegerField()
    first_tag_used = serializers.CharField(allow_null=True)
    last_tag_used = serializers.CharField(allow_null=True)
    next_tag = serializers.CharField()
    unused_tags = serializers.IntegerField(allow_null=True)
    summary = TicketSummarySerializer()
