"""Management command running one dive monitoring cycle."""

from django.core.management.base import BaseCommand

from django_diveops.alerts import escalate_unacknowledged_alerts
from django_diveops.services import evaluate_active_dives


class Command(BaseCommand):
    help = 'Check active dives for overrun bottom time and escalate unacknowledged alerts'

    def add_arguments(self, parser):
        parser.add_argument(
            '--skip-escalation',
            action='store_true',
            help='Only evaluate active dives, do not escalate unacknowledged alerts'
        )

    def handle(self, *args, **options):
        result = evaluate_active_dives()

        self.stdout.write(
            f'Checked {result.dives_checked} active dives, '
            f'raised {len(result.alerts)} alerts'
        )
        for warning in result.warnings:
            self.stderr.write(self.style.WARNING(f'  - {warning}'))

        if not options['skip_escalation']:
            escalations = escalate_unacknowledged_alerts()
            self.stdout.write(f'Escalated {len(escalations)} unacknowledged alerts')

        self.stdout.write(self.style.SUCCESS('Monitoring cycle complete'))
