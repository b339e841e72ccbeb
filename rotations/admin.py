"""
Django admin configuration for rotations app.
"""
from django.contrib import admin, messages

from rotations.models import (
    JunkRule,
    Lead,
    LeadAdditionalData,
    LeadLog,
    LeadSource,
    Participant,
    ParticipantSlot,
    Rotation,
)
from rotations.services.junk_filter import mark_lead_as_junk
from rotations.services.rotations import launch_rotation


class ParticipantSlotInline(admin.TabularInline):
    """Inline display of a rotation's roster."""
    model = ParticipantSlot
    extra = 0
    fields = ('queue_position', 'name', 'participant', 'discord_name', 'discord_webhook',
              'lead_limit', 'leads_received', 'is_active', 'is_paused', 'pause_reason')
    readonly_fields = ('queue_position', 'leads_received', 'is_active', 'is_paused', 'pause_reason')
    ordering = ('queue_position',)
    can_delete = False

    def has_add_permission(self, request, obj=None):
        """Roster membership changes go through the rotation API."""
        return False


class LeadSourceInline(admin.TabularInline):
    """Inline display of a rotation's lead sources."""
    model = LeadSource
    extra = 0
    fields = ('url', 'domain', 'is_active')


@admin.register(Rotation)
class RotationAdmin(admin.ModelAdmin):
    """Admin interface for Rotation model."""

    list_display = ('id', 'name', 'is_launched', 'current_position', 'total_leads', 'created_at')
    list_filter = ('is_launched',)
    search_fields = ('name',)
    readonly_fields = ('is_launched', 'current_position', 'total_leads', 'created_at', 'updated_at')
    inlines = [ParticipantSlotInline, LeadSourceInline]
    actions = ['launch_selected']

    @admin.action(description='Launch selected rotations')
    def launch_selected(self, request, queryset):
        for rotation in queryset:
            launch_rotation(rotation.id)
        self.message_user(request, f"{queryset.count()} rotation(s) launched", messages.SUCCESS)


class LeadAdditionalDataInline(admin.TabularInline):
    """Inline display of additional form fields for a lead."""
    model = LeadAdditionalData
    extra = 0
    readonly_fields = ('field_key', 'field_value')
    can_delete = False


@admin.register(Lead)
class LeadAdmin(admin.ModelAdmin):
    """Admin interface for Lead model."""

    list_display = ('id', 'name', 'email', 'phone', 'rotation', 'slot', 'status', 'received_at')
    list_filter = ('status', 'rotation', 'received_at')
    search_fields = ('id', 'name', 'email', 'phone', 'source_url')
    readonly_fields = ('id', 'rotation', 'slot', 'name', 'email', 'phone', 'source_url',
                       'source_domain', 'status', 'status_reason', 'received_at')

    fieldsets = (
        ('Status', {
            'fields': ('id', 'status', 'status_reason')
        }),
        ('Contact', {
            'fields': ('name', 'email', 'phone')
        }),
        ('Assignment', {
            'fields': ('rotation', 'slot', 'received_at')
        }),
        ('Source', {
            'fields': ('source_url', 'source_domain'),
            'classes': ('collapse',)
        }),
    )

    inlines = [LeadAdditionalDataInline]
    actions = ['mark_as_junk']

    @admin.action(description='Mark selected leads as junk')
    def mark_as_junk(self, request, queryset):
        created = 0
        for lead in queryset.exclude(status=Lead.Status.JUNK):
            created += len(mark_lead_as_junk(lead.id))
        self.message_user(request, f"Leads marked as junk, {created} junk rule(s) created", messages.SUCCESS)

    def has_add_permission(self, request):
        """Leads only enter through the webhooks."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Disable lead deletion through admin."""
        return False


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'discord_name', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('name', 'discord_name')


@admin.register(JunkRule)
class JunkRuleAdmin(admin.ModelAdmin):
    list_display = ('id', 'rule_type', 'value', 'reason', 'created_at')
    list_filter = ('rule_type',)
    search_fields = ('value',)


@admin.register(LeadLog)
class LeadLogAdmin(admin.ModelAdmin):
    """Read-only admin interface for the audit trail."""

    list_display = ('id', 'created_at', 'event_type', 'status', 'rotation', 'lead', 'message')
    list_filter = ('status', 'event_type', 'created_at')
    search_fields = ('message', 'lead__id', 'error_details')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
