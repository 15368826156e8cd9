from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    """Accounts by role; a seller's shop is listed beside the account"""
    model = CustomUser
    list_display = ('email', 'display_name', 'role', 'shop_name', 'is_staff', 'is_active', 'date_joined')
    list_filter = ('role', 'is_staff', 'is_active')
    list_select_related = ('shop',)
    ordering = ('-date_joined',)
    search_fields = ('email', 'username', 'phone', 'shop__name')
    readonly_fields = ('date_joined', 'last_login')

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Marketplace', {'fields': ('username', 'phone', 'role')}),
        ('Operator access', {'fields': ('is_active', 'is_staff', 'is_superuser')}),
        ('Dates', {'fields': ('date_joined', 'last_login')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'username', 'phone', 'role', 'password1', 'password2'),
        }),
    )

    @admin.display(description='Shop')
    def shop_name(self, obj):
        shop = getattr(obj, 'shop', None)
        return shop.name if shop else '-'
