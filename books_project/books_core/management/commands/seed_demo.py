import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils.text import slugify

from books_core import services
from books_core.models import (Company, Contact, EntityMembership, Product,
                               Tax, TransactionStatus, TransactionType)

User = get_user_model()


class Command(BaseCommand):
    help = "Create a demo tenant (company, user, masters) and run documents through the engine."

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--company",  # Define flag
            default="Demo Ltd",
            help="Name of the demo company (default: Demo Ltd)",
        )
        parser.add_argument("--username", default="demo", help="Username for the demo user.")
        parser.add_argument("--password", default="demo123", help="Password for the demo user.")

    @transaction.atomic
    def handle(self, *args, **options):
        # Read arguments from add_arguments()
        company_name = options["company"]
        slug = slugify(company_name) or "company"
        if Company.objects.filter(slug=slug).exists():
            raise CommandError(f"Company '{slug}' already exists")

        self.stdout.write(self.style.NOTICE(f"Seeding demo data for {company_name}..."))

        # 1. User, company (the chart of accounts is created with it) and membership
        user, created = User.objects.get_or_create(
            username=options["username"], defaults={"email": f"{options['username']}@example.com"}
        )
        if created:
            user.set_password(options["password"])
            user.save()
        company = Company.objects.create(name=company_name, slug=slug, owner=user)
        EntityMembership.objects.create(user=user, company=company, role="ADMIN")

        # 2. Masters
        gst = Tax.objects.create(company=company, name="GST 10%", rate=Decimal("10.00"))
        customer = Contact.objects.create(company=company, name="Acme Corp", email="ap@acme.test")
        vendor = Contact.objects.create(
            company=company, name="Widget Supply", is_customer=False, is_vendor=True
        )
        widget = Product.objects.create(
            company=company, sku="WID-1", name="Widget",
            sale_price=Decimal("25.00"), purchase_price=Decimal("12.00"),
            opening_stock=Decimal("100"), min_stock_level=Decimal("20"), default_tax=gst,
        )
        consulting = Product.objects.create(
            company=company, sku="SRV-1", name="Consulting hour",
            sale_price=Decimal("150.00"), is_service=True,
        )
        bank = services.create_account(
            company, user, "1010", "Bank Account", "ASSET",
            opening_balance=Decimal("5000.00"), opening_date=datetime.date.today().replace(day=1),
        )

        # 3. Documents: an invoice paid in part, a bill paid in full, a journal
        invoice = services.create_transaction(
            company, user, TransactionType.INVOICE,
            [
                {"product_id": widget.pk, "quantity": "10"},
                {"product_id": consulting.pk, "quantity": "4", "discount_percent": "10"},
            ],
            contact_id=customer.pk,
        )
        services.transition_status(company, user, invoice.pk, TransactionStatus.SENT)
        services.apply_payment(company, user, invoice.pk, Decimal("300.00"), method="CASH")

        bill = services.create_transaction(
            company, user, TransactionType.BILL,
            [{"product_id": widget.pk, "quantity": "50"}],
            contact_id=vendor.pk,
        )
        services.transition_status(company, user, bill.pk, TransactionStatus.APPROVED)
        services.transition_status(company, user, bill.pk, TransactionStatus.SENT)
        bill.refresh_from_db()
        services.apply_payment(company, user, bill.pk, bill.balance_amount)

        journal = services.create_transaction(
            company, user, TransactionType.JOURNAL,
            [
                {"account_id": bank.pk, "side": "DEBIT", "quantity": 1, "rate": "1000.00",
                 "description": "Owner contribution"},
                {"account_id": company.account_set.get(code="3001").pk, "side": "CREDIT",
                 "quantity": 1, "rate": "1000.00", "description": "Owner contribution"},
            ],
        )
        services.transition_status(company, user, journal.pk, TransactionStatus.ACCEPTED)

        sheet = services.get_balance_sheet(company, strict=True)
        self.stdout.write(
            f"Assets {sheet['total_assets']} = liabilities + equity {sheet['total_liabilities_and_equity']}"
        )
        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully!"))
