import uuid

from django.conf import settings
from django.db import models

RECEIPT_PREFIX = "TKT-"
TICKET_TYPES = ("men_ticket", "women_ticket", "child_ticket")


class TicketCounterSession(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cashier = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="ticket_sessions")
    opened_at = models.DateTimeField(auto_now_add=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    starting_tag = models.CharField(max_length=6)
    # Next physical tag to hand out; stored as an int so allocation is arithmetic.
    next_tag = models.PositiveIntegerField()
    tags_received = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["cashier", "opened_at"], name="ticketsession_cashier_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["cashier"],
                condition=models.Q(closed_at__isnull=True),
                name="uniq_open_ticket_session_per_cashier",
            ),
        ]

    @property
    def is_open(self):
        return self.closed_at is None


class TicketTransaction(models.Model):
    class PaymentMethod(models.TextChoices):
        UPI = "upi", "UPI"
        CASH = "cash", "Cash"
        SPLIT = "split", "Split"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    receipt_no = models.CharField(max_length=8, editable=False, db_index=True)
    customer_name = models.CharField(max_length=255)
    customer_phone = models.CharField(max_length=32)
    vehicle_number = models.CharField(max_length=32, blank=True, default="")

    men_ticket = models.PositiveIntegerField(default=0)
    women_ticket = models.PositiveIntegerField(default=0)
    child_ticket = models.PositiveIntegerField(default=0)
    tag_numbers = models.TextField(blank=True, default="")

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    total_due = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    split_upi_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    split_cash_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_complimentary = models.BooleanField(default=False)

    cashier = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="ticket_transactions")
    cashier_name = models.CharField(max_length=255)
    session = models.ForeignKey(
        TicketCounterSession,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["cashier", "created_at"], name="ticket_cashier_created_idx"),
            models.Index(fields=["created_at"], name="ticket_created_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self.receipt_no:
            self.receipt_no = self.id.hex[-8:].upper()
        super().save(*args, **kwargs)

    @property
    def ticket_count(self):
        return self.men_ticket + self.women_ticket + self.child_ticket

    @property
    def tag_list(self):
        return [tag for tag in self.tag_numbers.split(",") if tag]

    @property
    def receipt_number(self):
        return f"{RECEIPT_PREFIX}{self.receipt_no}"
