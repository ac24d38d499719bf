import uuid

import django.core.serializers.json
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="RentalTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("receipt_no", models.CharField(db_index=True, editable=False, max_length=8)),
                ("customer_name", models.CharField(max_length=255)),
                ("customer_phone", models.CharField(max_length=32)),
                ("male_costume", models.PositiveIntegerField(default=0)),
                ("female_costume", models.PositiveIntegerField(default=0)),
                ("kids_costume", models.PositiveIntegerField(default=0)),
                ("tube", models.PositiveIntegerField(default=0)),
                ("locker", models.PositiveIntegerField(default=0)),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                ("advance", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_due", models.DecimalField(decimal_places=2, max_digits=12)),
                ("is_complimentary", models.BooleanField(default=False)),
                ("cashier_name", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("advance_returned", "Advance returned")],
                        default="active",
                        max_length=32,
                    ),
                ),
                ("advance_returned_at", models.DateTimeField(blank=True, null=True)),
                ("advance_returned_by_name", models.CharField(blank=True, default="", max_length=255)),
                ("return_details", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("total_deduction", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("credit_applied", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("actual_amount_returned", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                (
                    "cashier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rental_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "advance_returned_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "parent_transaction",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="linked_transaction",
                        to="rentals.rentaltransaction",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["cashier", "created_at"], name="rental_cashier_created_idx"),
                    models.Index(fields=["status", "created_at"], name="rental_status_created_idx"),
                    models.Index(fields=["created_at"], name="rental_created_idx"),
                ],
            },
        ),
    ]
