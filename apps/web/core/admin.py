"""Admin registrations for core models."""

from django.contrib import admin

from .models import MarketplaceVendor, POSAccount, Tenant


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["name", "slug", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "slug"]
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ["created_at", "updated_at"]


@admin.register(POSAccount)
class POSAccountAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["name", "tenant", "provider", "branch_id", "is_active"]
    list_filter = ["provider", "is_active"]
    search_fields = ["name", "tenant__name", "branch_id"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(MarketplaceVendor)
class MarketplaceVendorAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = [
        "vendor_code",
        "chain_code",
        "tenant",
        "pos_account",
        "platform_restaurant_id",
        "is_active",
    ]
    list_filter = ["is_active"]
    search_fields = ["vendor_code", "chain_code", "platform_restaurant_id"]
    readonly_fields = ["created_at", "updated_at"]
