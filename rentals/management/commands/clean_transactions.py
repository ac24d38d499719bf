from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from rentals.models import RentalTransaction
from tickets.models import TicketCounterSession, TicketTransaction


class Command(BaseCommand):
    help = "Delete every rental and ticket transaction, along with ticket counter sessions."

    def add_arguments(self, parser):
        parser.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    def handle(self, *args, **options):
        if not options["yes"]:
            raise CommandError("This removes all transactions. Re-run with --yes to confirm.")

        with transaction.atomic():
            # Linked transactions protect their parents, so they go first.
            linked_count, _ = RentalTransaction.objects.filter(parent_transaction__isnull=False).delete()
            rental_count, _ = RentalTransaction.objects.all().delete()
            ticket_count, _ = TicketTransaction.objects.all().delete()
            session_count, _ = TicketCounterSession.objects.all().delete()

        self.stdout.write(f"- rental transactions: {linked_count + rental_count}")
        self.stdout.write(f"- ticket transactions: {ticket_count}")
        self.stdout.write(f"- ticket sessions: {session_count}")
        self.stdout.write(self.style.SUCCESS("Transactions cleaned."))
