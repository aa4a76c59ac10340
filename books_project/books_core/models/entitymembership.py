from django.conf import settings
from django.db import models
from ..managers import TenantManager


# ---------- Tenant / Company ----------
class Company(models.Model):

    """Tenant / Organization"""
    # Store company’s full display name
    name = models.CharField(max_length=200)

    slug = models.SlugField(  # A URL-friendly identifier
        max_length=80, unique=True  # no two companies can have the same slug
    )

    # Link to a user account (creator or admin of company)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="owned_companies",
    )

    # Single reporting currency per tenant (no revaluation)
    currency_code = models.CharField(max_length=10, default="USD")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name


# ---------- EntityMembership ----------
class EntityMembership(models.Model):
    """Bridge between a user and a company; carries the user's role there."""

    ROLE_CHOICES = [
        ("ADMIN", "Admin"),            # full control
        ("ACCOUNTANT", "Accountant"),  # can create, approve and post documents
        ("VIEWER", "Viewer"),          # read-only access
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    company = models.ForeignKey(
        "Company", on_delete=models.CASCADE, related_name="memberships"
    )
    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default="VIEWER",  # safe, read-only
    )
    # Suspend access without deleting the record
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # one user can only have one membership per company
        constraints = [
            models.UniqueConstraint(
                fields=["user", "company"], name="uq_user_company_membership"
            ),
        ]

    def __str__(self):
        return f"{self.user} @ {self.company} ({self.role})"

    @classmethod
    def role_for(cls, user, company):
        """Role of `user` inside `company`, or "" when there is no membership."""
        if user is None:
            return ""
        membership = (
            cls.objects.for_company(company)
            .filter(user=user, is_active=True)
            .only("role")
            .first()
        )
        return membership.role if membership else ""
