from decimal import Decimal

from rest_framework import serializers

from rentals.models import ITEM_TYPES, RentalTransaction

ZERO = Decimal("0")


def _money_field(**kwargs):
    return serializers.DecimalField(max_digits=12, decimal_places=2, min_value=ZERO, **kwargs)


def _quantity_field():
    return serializers.IntegerField(min_value=0, default=0)


class RentalTransactionCreateSerializer(serializers.Serializer):
    customer_name = serializers.CharField(
        max_length=255,
        error_messages={"required": "Customer name is required.", "blank": "Customer name is required."},
    )
    customer_phone = serializers.CharField(
        max_length=32,
        error_messages={"required": "Customer phone is required.", "blank": "Customer phone is required."},
    )
    male_costume = _quantity_field()
    female_costume = _quantity_field()
    kids_costume = _quantity_field()
    tube = _quantity_field()
    locker = _quantity_field()
    subtotal = _money_field()
    advance = _money_field(default=ZERO)
    total_due = _money_field(required=False, allow_null=True)
    parent_transaction = serializers.UUIDField(required=False, allow_null=True)
    is_complimentary = serializers.BooleanField(default=False)


class ReturnItemSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=ITEM_TYPES)
    returned_good = _quantity_field()
    returned_damaged = _quantity_field()
    lost = _quantity_field()
    deduction = _money_field(default=ZERO)


class ReturnDetailsSerializer(serializers.Serializer):
    items = ReturnItemSerializer(many=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_items(self, value):
        seen = set()
        for entry in value:
            if entry["type"] in seen:
                raise serializers.ValidationError(f"{entry['type']} is listed more than once.")
            seen.add(entry["type"])
        return value


class ReturnAdvanceSerializer(serializers.Serializer):
    return_details = ReturnDetailsSerializer()
    linked_return_details = ReturnDetailsSerializer(required=False, allow_null=True)


class RentalTransactionSerializer(serializers.ModelSerializer):
    """Read model; display names come from the live user rows, stored names are the fallback."""

    receipt_number = serializers.CharField(read_only=True)
    cashier_name = serializers.SerializerMethodField()
    advance_returned_by_name = serializers.SerializerMethodField()

    class Meta:
        model = RentalTransaction
        fields = [
            "id",
            "receipt_no",
            "receipt_number",
            "customer_name",
            "customer_phone",
            *ITEM_TYPES,
            "subtotal",
            "advance",
            "total_due",
            "is_complimentary",
            "cashier",
            "cashier_name",
            "created_at",
            "status",
            "advance_returned_at",
            "advance_returned_by",
            "advance_returned_by_name",
            "return_details",
            "total_deduction",
            "credit_applied",
            "actual_amount_returned",
            "parent_transaction",
        ]
        read_only_fields = fields

    def get_cashier_name(self, obj):
        live_name = obj.cashier.name if obj.cashier_id else ""
        return live_name or obj.cashier_name

    def get_advance_returned_by_name(self, obj):
        if not obj.advance_returned_by_id:
            return obj.advance_returned_by_name or None
        return obj.advance_returned_by.name or obj.advance_returned_by_name


class RentalTransactionWithLinkSerializer(RentalTransactionSerializer):
    linked_transaction = serializers.SerializerMethodField()

    class Meta(RentalTransactionSerializer.Meta):
        fields = RentalTransactionSerializer.Meta.fields + ["linked_transaction"]
        read_only_fields = fields

    def get_linked_transaction(self, obj):
        if obj.parent_transaction_id:
            return None
        try:
            child = obj.linked_transaction
        except RentalTransaction.DoesNotExist:
            return None
        return RentalTransactionSerializer(child, context=self.context).data


class RentalSummarySerializer(serializers.Serializer):
    start = serializers.DateTimeField(allow_null=True)
    end = serializers.DateTimeField(allow_null=True)
    transaction_count = serializers.IntegerField()
    linked_count = serializers.IntegerField()
    returned_count = serializers.IntegerField()
    total_sales = serializers.DecimalField(max_digits=14, decimal_places=2)
    advance_collected = serializers.DecimalField(max_digits=14, decimal_places=2)
    advance_returned = serializers.DecimalField(max_digits=14, decimal_places=2)
    deductions = serializers.DecimalField(max_digits=14, decimal_places=2)
    credit_applied = serializers.DecimalField(max_digits=14, decimal_places=2)
    active_advance = serializers.DecimalField(max_digits=14, decimal_places=2)
    cash_to_hand_over = serializers.DecimalField(max_digits=14, decimal_places=2)
