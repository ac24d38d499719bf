import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Price(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item_key = models.CharField(max_length=64, unique=True)
    item_name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["item_key"]

    def __str__(self):
        return f"{self.item_name} ({self.price})"


class Setting(models.Model):
    """Free-form key/value configuration read by the counters (UPI ids, business names)."""

    key = models.CharField(max_length=128, primary_key=True)
    value = models.TextField(blank=True, default="")
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["key"]

    def __str__(self):
        return self.key
