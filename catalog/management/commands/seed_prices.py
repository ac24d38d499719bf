from decimal import Decimal

from django.core.management.base import BaseCommand

from catalog.models import Price

DEFAULT_PRICES = [
    ("male_costume", "Male Costume", Decimal("100.00")),
    ("female_costume", "Female Costume", Decimal("100.00")),
    ("kids_costume", "Kids Costume", Decimal("100.00")),
    ("tube", "Tube", Decimal("50.00")),
    ("locker", "Locker", Decimal("100.00")),
    ("men_ticket", "Men Ticket", Decimal("500.00")),
    ("women_ticket", "Women Ticket", Decimal("500.00")),
    ("child_ticket", "Child Ticket", Decimal("300.00")),
]


class Command(BaseCommand):
    help = "Insert the default counter prices. Existing rows are left untouched."

    def handle(self, *args, **options):
        created_count = 0
        for item_key, item_name, price in DEFAULT_PRICES:
            _, created = Price.objects.get_or_create(
                item_key=item_key,
                defaults={"item_name": item_name, "price": price, "is_active": True},
            )
            if created:
                created_count += 1
                self.stdout.write(f"- {item_key}: {price}")

        if created_count:
            self.stdout.write(self.style.SUCCESS(f"Seeded {created_count} price(s)."))
        else:
            self.stdout.write(self.style.WARNING("All default prices already exist."))
