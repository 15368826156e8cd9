"""
Compare every shop's stored balance with its ledger entries and with the
balance rebuilt from orders and withdrawals.

Usage:
    python manage.py reconcile_balances
    python manage.py reconcile_balances --shop <shop uuid>
"""

import uuid

from django.core.management.base import BaseCommand, CommandError

from apps.shops.models import Shop
from apps.shops.services.ledger import reconcile_shop


class Command(BaseCommand):
    help = 'Report shops whose balance drifted from the ledger'

    def add_arguments(self, parser):
        parser.add_argument('--shop', help='Only check the shop with this shop_id')

    def handle(self, *args, **options):
        shops = Shop.objects.order_by('pk')

        if options['shop']:
            try:
                shop_id = uuid.UUID(options['shop'])
            except ValueError:
                raise CommandError(f"Invalid shop id: {options['shop']}")
            shops = shops.filter(shop_id=shop_id)
            if not shops.exists():
                raise CommandError(f'Shop not found: {shop_id}')

        drifted = 0
        checked = 0
        for shop in shops.iterator():
            report = reconcile_shop(shop)
            checked += 1
            if report['in_sync']:
                continue

            drifted += 1
            self.stdout.write(self.style.WARNING(
                f"✗ {report['shop_name']} ({report['shop_id']}): "
                f"stored={report['stored_balance']} "
                f"ledger={report['ledger_balance']} "
                f"recomputed={report['recomputed_balance']}"
            ))

        if drifted:
            raise CommandError(f'{drifted} of {checked} shop(s) out of balance')

        self.stdout.write(self.style.SUCCESS(f'✓ {checked} shop(s) reconciled, no drift'))
