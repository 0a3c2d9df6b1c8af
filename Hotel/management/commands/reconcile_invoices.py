from django.core.management.base import BaseCommand

from Hotel.invoicing import reconcile_uninvoiced_orders, uninvoiced_completed_orders


class Command(BaseCommand):
    help = 'Generate invoices for completed orders that are missing one'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only list the orders that would be invoiced',
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            orders = list(uninvoiced_completed_orders())
            for order in orders:
                self.stdout.write(f'Order #{order.short_id} ({order.total_amount}) has no invoice')
            self.stdout.write(f'{len(orders)} completed orders without an invoice')
            return

        generated, failed = reconcile_uninvoiced_orders()

        for invoice in generated:
            self.stdout.write(f'Created {invoice.invoice_number} ({invoice.total})')

        self.stdout.write(self.style.SUCCESS(f'Generated {len(generated)} invoices'))
        if failed:
            self.stdout.write(self.style.ERROR(f'{len(failed)} orders could not be invoiced'))
