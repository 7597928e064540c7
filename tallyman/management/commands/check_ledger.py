"""
Verify that no product is committed beyond its on-hand stock.

Usage:
    python manage.py check_ledger
    python manage.py check_ledger --product SKU-42
"""

from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = "Report products whose active commitments exceed on-hand stock"

    def add_arguments(self, parser):
        parser.add_argument(
            "--product",
            action="append",
            dest="products",
            default=[],
            help="Only check this product id (repeatable)",
        )

    def handle(self, *args, **options):
        from tallyman.conf import get_inventory_backend
        from tallyman.models import Commitment

        inventory = get_inventory_backend()
        products = options["products"] or None
        committed = Commitment.objects.committed_by_product(products)

        violations = []
        for product_id in sorted(committed):
            on_hand = inventory.get_on_hand(product_id)
            if committed[product_id] > on_hand:
                violations.append((product_id, committed[product_id], on_hand))

        for product_id, total, on_hand in violations:
            self.stdout.write(
                self.style.ERROR(
                    f"{product_id}: {total} committed, {on_hand} on hand "
                    f"(over by {total - on_hand})"
                )
            )

        if violations:
            raise CommandError(f"{len(violations)} product(s) over-committed")

        self.stdout.write(
            self.style.SUCCESS(f"Ledger consistent ({len(committed)} product(s) checked)")
        )
