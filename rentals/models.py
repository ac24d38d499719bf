import uuid

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

RECEIPT_PREFIX = "HC-"
ITEM_TYPES = ("male_costume", "female_costume", "kids_costume", "tube", "locker")


class RentalTransaction(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        ADVANCE_RETURNED = "advance_returned", "Advance returned"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    receipt_no = models.CharField(max_length=8, editable=False, db_index=True)
    customer_name = models.CharField(max_length=255)
    customer_phone = models.CharField(max_length=32)

    male_costume = models.PositiveIntegerField(default=0)
    female_costume = models.PositiveIntegerField(default=0)
    kids_costume = models.PositiveIntegerField(default=0)
    tube = models.PositiveIntegerField(default=0)
    locker = models.PositiveIntegerField(default=0)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    advance = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_due = models.DecimalField(max_digits=12, decimal_places=2)
    is_complimentary = models.BooleanField(default=False)

    cashier = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="rental_transactions")
    cashier_name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    status = models.CharField(max_length=32, choices=Status.choices, default=Status.ACTIVE)
    advance_returned_at = models.DateTimeField(null=True, blank=True)
    advance_returned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    advance_returned_by_name = models.CharField(max_length=255, blank=True, default="")
    return_details = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    total_deduction = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    # Part of the advance spent on the linked transaction, fixed at return time.
    credit_applied = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    actual_amount_returned = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    parent_transaction = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="linked_transaction",
    )

    class Meta:
        indexes = [
            models.Index(fields=["cashier", "created_at"], name="rental_cashier_created_idx"),
            models.Index(fields=["status", "created_at"], name="rental_status_created_idx"),
            models.Index(fields=["created_at"], name="rental_created_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self.receipt_no:
            self.receipt_no = self.id.hex[-8:].upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.receipt_number

    @property
    def receipt_number(self):
        return f"{RECEIPT_PREFIX}{self.receipt_no}"

    @property
    def item_quantities(self):
        return {item_type: getattr(self, item_type) for item_type in ITEM_TYPES}

    @property
    def is_linked_child(self):
        return self.parent_transaction_id is not None
