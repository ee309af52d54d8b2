from django.contrib import admin
from django.utils import timezone
from django.utils.html import format_html
from .models import Category, Expense, ExpenseStatus


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    """Admin for categories. Leave owner empty for a shared default."""

    list_display = ['name', 'owner', 'created_at']
    list_filter = ['created_at']
    search_fields = ['name', 'owner__email']
    ordering = ['name']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    """
    Admin interface for expenses.

    Amount, category and description are immutable after creation, and
    status only moves out of PENDING, so everything is read-only here.
    Stale pending expenses can be expired in bulk.
    """

    list_display = [
        'owner',
        'amount',
        'category',
        'status_badge',
        'payment_method',
        'created_at',
        'resolved_at',
    ]

    list_filter = [
        'status',
        'payment_method',
        'created_at',
    ]

    search_fields = [
        'owner__email',
        'owner__display_name',
        'category__name',
        'description',
    ]

    readonly_fields = [
        'id',
        'owner',
        'amount',
        'currency',
        'category',
        'description',
        'payment_method',
        'status',
        'created_at',
        'resolved_at',
    ]

    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    def status_badge(self, obj):
        """Display expense status as colored badge."""
        colors = {
            ExpenseStatus.PENDING: ('#E5C49A', '#2C1810'),
            ExpenseStatus.CONFIRMED: ('#6B8E5E', 'white'),
            ExpenseStatus.CANCELLED: ('#B85C5C', 'white'),
            ExpenseStatus.EXPIRED: ('#A0A0A0', 'white'),
        }
        bg, fg = colors.get(obj.status, ('#ccc', '#666'))
        return format_html(
            '<span style="background: {}; color: {}; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            bg, fg, obj.get_status_display()
        )
    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'

    actions = ['expire_selected']

    @admin.action(description='Expire selected pending expenses')
    def expire_selected(self, request, queryset):
        """Expire selected expenses that are still pending."""
        count = queryset.filter(status=ExpenseStatus.PENDING).update(
            status=ExpenseStatus.EXPIRED,
            resolved_at=timezone.now(),
        )
        self.message_user(request, f'Expired {count} pending expense(s).')

    def has_add_permission(self, request):
        """Expenses are created through the API."""
        return False

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('owner', 'category')
