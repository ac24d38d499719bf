import uuid

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
            name="TicketCounterSession",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("opened_at", models.DateTimeField(auto_now_add=True)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("starting_tag", models.CharField(max_length=6)),
                ("next_tag", models.PositiveIntegerField()),
                ("tags_received", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "cashier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ticket_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["cashier", "opened_at"], name="ticketsession_cashier_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("closed_at__isnull", True)),
                        fields=("cashier",),
                        name="uniq_open_ticket_session_per_cashier",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TicketTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("receipt_no", models.CharField(db_index=True, editable=False, max_length=8)),
                ("customer_name", models.CharField(max_length=255)),
                ("customer_phone", models.CharField(max_length=32)),
                ("vehicle_number", models.CharField(blank=True, default="", max_length=32)),
                ("men_ticket", models.PositiveIntegerField(default=0)),
                ("women_ticket", models.PositiveIntegerField(default=0)),
                ("child_ticket", models.PositiveIntegerField(default=0)),
                ("tag_numbers", models.TextField(blank=True, default="")),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                ("total_due", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[("upi", "UPI"), ("cash", "Cash"), ("split", "Split")],
                        max_length=16,
                    ),
                ),
                ("split_upi_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("split_cash_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("is_complimentary", models.BooleanField(default=False)),
                ("cashier_name", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "cashier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ticket_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "session",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="tickets.ticketcountersession",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["cashier", "created_at"], name="ticket_cashier_created_idx"),
                    models.Index(fields=["created_at"], name="ticket_created_idx"),
                ],
            },
        ),
    ]
