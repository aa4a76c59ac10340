from django.contrib import admin
from django.core.exceptions import PermissionDenied

from .models import (Account, ApprovalHistory, Company, Contact,
                     EntityMembership, LedgerEntry, Payment, Product,
                     StockMovement, Tax, Transaction, TransactionItem)


class TenantAdminMixin:
    """
    Enforce tenant isolation in Django admin.
    Superusers see every company; staff see the companies they are members of.
    """

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if request.user.is_superuser:
            return qs
        return qs.filter(
            company__memberships__user=request.user,
            company__memberships__is_active=True,
        ).distinct()


"""Base admin for append-only models: every field readonly, no add/delete."""
class ReadOnlyAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_per_page = 50

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    # Prevent any attempt to save via the admin UI
    def save_model(self, request, obj, form, change):
        raise PermissionDenied("Rows cannot be changed via the admin.")

    def get_actions(self, request):
        return {}


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "slug", "currency_code", "owner", "created_at")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(EntityMembership)
class EntityMembershipAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("user", "company", "role", "is_active")
    list_filter = ("company", "role", "is_active")


@admin.register(Account)
class AccountAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("code", "name", "type", "parent", "current_balance", "is_system_account", "is_active")
    list_filter = ("company", "type", "is_active", "is_system_account")
    search_fields = ("code", "name")
    # accounts grouped by company, then sorted by code
    ordering = ("company", "code")
    readonly_fields = ("current_balance", "is_system_account")

    # same guards as services.accounts
    def get_readonly_fields(self, request, obj=None):
        fields = list(self.readonly_fields)
        if obj is None:
            return fields
        if obj.is_system_account:
            fields += ["code", "type", "is_active"]
        elif obj.ledger_entries.exists():
            fields.append("type")
        return fields

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.is_system_account:
            return False
        return super().has_delete_permission(request, obj)


@admin.register(Contact)
class ContactAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("name", "email", "is_customer", "is_vendor", "is_active")
    list_filter = ("company", "is_customer", "is_vendor", "is_active")
    search_fields = ("name", "email")


@admin.register(Tax)
class TaxAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("name", "type", "rate", "is_active")
    list_filter = ("company", "type")


@admin.register(Product)
class ProductAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("sku", "name", "sale_price", "purchase_price", "current_stock", "min_stock_level", "is_service")
    list_filter = ("company", "is_service", "is_active")
    search_fields = ("sku", "name")
    # stock only moves through movements
    readonly_fields = ("current_stock",)


class TransactionItemInline(admin.TabularInline):
    model = TransactionItem
    extra = 0
    can_delete = False
    fields = ("product", "description", "quantity", "rate", "discount_amount", "tax_amount", "amount", "account", "side")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Transaction)
class TransactionAdmin(ReadOnlyAdmin):
    """Documents are changed through the engine only; admin is for inspection."""
    list_display = ("transaction_number", "type", "status", "contact", "date", "due_date",
                    "total_amount", "balance_amount", "posted_at")
    list_filter = ("company", "type", "status")
    search_fields = ("transaction_number", "reference_number")
    date_hierarchy = "date"
    inlines = (TransactionItemInline,)


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdmin):
    list_display = ("date", "transaction", "account", "debit_amount", "credit_amount", "description")
    list_filter = ("company", "account__type")
    search_fields = ("transaction__transaction_number", "account__code")


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdmin):
    list_display = ("payment_date", "transaction", "settlement", "amount", "method")
    list_filter = ("company", "method")


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyAdmin):
    list_display = ("movement_date", "product", "movement_type", "quantity", "balance_quantity", "transaction")
    list_filter = ("company", "movement_type")


@admin.register(ApprovalHistory)
class ApprovalHistoryAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "transaction", "from_status", "action", "performed_by_name", "performed_by_role")
    list_filter = ("company", "action")
