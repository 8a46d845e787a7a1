"""
Core models - tenancy and integration accounts.

A Tenant owns one or more POS accounts; each POS account is exposed on the
Marketplace through one or more vendors. All sync data is scoped to a POS
account through AccountScopedModel.
"""

import uuid

from django.db import models

from .managers import AccountScopedManager


class Tenant(models.Model):
    """
    A restaurant business using the sync.

    All accounts and sync data hang off a Tenant.
    """

    slug = models.SlugField(unique=True, help_text="URL-safe identifier")
    name = models.CharField(max_length=200)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class POSProviderChoice(models.TextChoices):
    """POS providers an account can connect through."""

    REST = "rest", "REST API"
    MOCK = "mock", "Mock"


class POSAccount(models.Model):
    """
    Connection to a tenant's POS.

    Holds API credentials and the branch orders are created in. When
    branch_id is blank it is discovered from the POS catalog on first
    dispatch and persisted here.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="pos_accounts",
    )
    name = models.CharField(max_length=200)
    provider = models.CharField(
        max_length=20,
        choices=POSProviderChoice.choices,
        default=POSProviderChoice.REST,
    )
    client_id = models.CharField(max_length=255, blank=True)
    client_secret = models.CharField(max_length=255, blank=True)
    access_token = models.TextField(
        blank=True,
        help_text="Static API token (used instead of OAuth when set)",
    )
    branch_id = models.CharField(
        max_length=100,
        blank=True,
        help_text="POS branch orders are created in (blank = discover)",
    )
    branch_name = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name = "POS account"

    def __str__(self) -> str:
        return f"{self.name} ({self.tenant.slug})"


class MarketplaceVendor(models.Model):
    """
    A Marketplace vendor (storefront) backed by a POS account.

    Inbound order webhooks are routed to a POS account through the vendor
    code, or through the platform restaurant id when no code is supplied.
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="vendors",
    )
    pos_account = models.ForeignKey(
        POSAccount,
        on_delete=models.CASCADE,
        related_name="vendors",
    )
    vendor_code = models.CharField(max_length=100, unique=True)
    chain_code = models.CharField(max_length=100, blank=True)
    platform_restaurant_id = models.CharField(max_length=100, blank=True, db_index=True)
    platform_key = models.CharField(max_length=100, blank=True)

    # Marketplace API login
    username = models.CharField(max_length=255, blank=True)
    password = models.CharField(max_length=255, blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["vendor_code"]

    def __str__(self) -> str:
        return self.vendor_code


class AccountScopedModel(models.Model):
    """
    Abstract base for all POS-account-scoped sync data.

    Provides:
    - Automatic POS account FK
    - AccountScopedManager for filtered queries
    - Created/updated timestamps
    """

    account = models.ForeignKey(
        POSAccount,
        on_delete=models.CASCADE,
        related_name="%(class)ss",  # e.g., account.stablemappings
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AccountScopedManager()

    class Meta:
        abstract = True
