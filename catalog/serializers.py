from decimal import Decimal

from rest_framework import serializers

from catalog.models import Price, Setting


class PriceSerializer(serializers.ModelSerializer):
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    updated_by_name = serializers.SerializerMethodField()

    class Meta:
        model = Price
        fields = ["id", "item_key", "item_name", "price", "is_active", "updated_at", "updated_by", "updated_by_name"]
        read_only_fields = ["id", "item_key", "updated_at", "updated_by", "updated_by_name"]

    def get_updated_by_name(self, obj):
        return obj.updated_by.display_name if obj.updated_by_id else None


class SettingSerializer(serializers.ModelSerializer):
    key = serializers.CharField(max_length=128)
    value = serializers.CharField(allow_blank=True, trim_whitespace=False)

    class Meta:
        model = Setting
        fields = ["key", "value", "updated_at"]
        read_only_fields = ["updated_at"]

    def validate_key(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Setting key cannot be blank.")
        return value
