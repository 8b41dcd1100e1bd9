from django.core.management.base import BaseCommand
from django.utils import timezone

from patient.card import expire_cards
from patient.models import PatientModel


class Command(BaseCommand):
    help = 'Mark patient cards whose validity has elapsed as EXPIRED'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many cards would expire without changing them',
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            due = PatientModel.objects.filter(
                card_status=PatientModel.CARD_ACTIVE, card_expiry_date__lte=timezone.now()
            ).count()
            self.stdout.write(self.style.WARNING(f'DRY RUN - {due} card(s) would expire'))
            return

        count = expire_cards()
        self.stdout.write(self.style.SUCCESS(f'Expired {count} card(s)'))
