"""
Data models for Lead Router.
"""
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import Q


class Rotation(models.Model):
    """
    A lead-distribution pipeline ("round robin").

    `current_position` is the index into the ordered active roster where the
    next selection starts. It is only advanced by the distribution
    transaction, under a row lock.
    """

    name = models.CharField(max_length=255)
    description = models.TextField(null=True, blank=True)
    is_launched = models.BooleanField(default=False, db_index=True)
    current_position = models.PositiveIntegerField(default=0)
    total_leads = models.PositiveIntegerField(default=0)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rotations'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Rotation {self.id} - {self.name}"


class LeadSource(models.Model):
    """A landing page URL whose leads are routed into a rotation."""

    rotation = models.ForeignKey(
        Rotation,
        on_delete=models.CASCADE,
        related_name='lead_sources'
    )
    url = models.CharField(max_length=500, db_index=True)
    domain = models.CharField(max_length=255, db_index=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['rotation', 'id']

    def __str__(self):
        return self.url


class Participant(models.Model):
    """Global participant identity shared across rotations."""

    name = models.CharField(max_length=255)
    discord_name = models.CharField(max_length=255, null=True, blank=True)
    discord_webhook = models.URLField(max_length=500, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class ParticipantSlot(models.Model):
    """
    Rotation-scoped membership of a participant (or external contact).

    Active slots of one rotation occupy the dense positions 0..N-1.
    Slots with leads are never deleted, only deactivated.
    """

    rotation = models.ForeignKey(
        Rotation,
        on_delete=models.CASCADE,
        related_name='slots'
    )
    participant = models.ForeignKey(
        Participant,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='slots'
    )
    name = models.CharField(max_length=255)
    discord_name = models.CharField(max_length=255, null=True, blank=True)
    discord_webhook = models.CharField(max_length=500, null=True, blank=True)
    lead_limit = models.PositiveIntegerField(default=15)
    leads_received = models.PositiveIntegerField(default=0)
    queue_position = models.PositiveIntegerField()
    is_external = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    is_paused = models.BooleanField(default=False)
    pause_reason = models.CharField(max_length=255, null=True, blank=True)
    paused_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['rotation', 'queue_position']
        constraints = [
            models.UniqueConstraint(
                fields=['rotation', 'queue_position'],
                condition=Q(is_active=True),
                name='unique_active_slot_position',
            ),
        ]

    def __str__(self):
        return f"{self.name} (#{self.queue_position} in rotation {self.rotation_id})"

    @property
    def is_available(self) -> bool:
        return self.is_active and not self.is_paused


class Lead(models.Model):
    """
    One inbound prospect, assigned to exactly one slot at creation.
    Only `status` and `status_reason` change afterwards.
    """

    class Status(models.TextChoices):
        SENT = 'sent', 'Sent'
        JUNK = 'junk', 'Junk'

    rotation = models.ForeignKey(
        Rotation,
        on_delete=models.CASCADE,
        related_name='leads'
    )
    slot = models.ForeignKey(
        ParticipantSlot,
        on_delete=models.PROTECT,
        related_name='leads'
    )
    name = models.CharField(max_length=255, null=True, blank=True)
    phone = models.CharField(max_length=50, null=True, blank=True)
    email = models.CharField(max_length=255, null=True, blank=True)
    source_url = models.CharField(max_length=500, null=True, blank=True)
    source_domain = models.CharField(max_length=255, null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.SENT,
        db_index=True
    )
    status_reason = models.CharField(max_length=255, null=True, blank=True)
    received_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-received_at']
        indexes = [
            models.Index(fields=['rotation', 'received_at'], name='lead_rotation_received_idx'),
        ]

    def __str__(self):
        return f"Lead {self.id} - {self.status}"


class LeadAdditionalData(models.Model):
    """Arbitrary key/value form field attached to a lead."""

    lead = models.ForeignKey(
        Lead,
        on_delete=models.CASCADE,
        related_name='additional_data'
    )
    field_key = models.CharField(max_length=255)
    field_value = models.TextField()

    class Meta:
        ordering = ['lead', 'id']

    def __str__(self):
        return f"{self.field_key}: {self.field_value}"


class JunkRule(models.Model):
    """Blocklisted contact value; matching leads are classified as junk."""

    class RuleType(models.TextChoices):
        EMAIL = 'email', 'Email'
        PHONE = 'phone', 'Phone'

    rule_type = models.CharField(max_length=10, choices=RuleType.choices)
    value = models.CharField(max_length=255)
    reason = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['rule_type', 'value'],
                name='unique_junk_rule',
            ),
        ]

    @staticmethod
    def normalize_value(rule_type, value) -> str:
        """Emails are compared trimmed and lower-cased, phones trimmed."""
        if value is None:
            return ''
        normalized = str(value).strip()
        if rule_type == JunkRule.RuleType.EMAIL:
            normalized = normalized.lower()
        return normalized

    def clean(self):
        self.value = self.normalize_value(self.rule_type, self.value)

    def save(self, *args, **kwargs):
        self.value = self.normalize_value(self.rule_type, self.value)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.rule_type}: {self.value}"


class LeadLog(models.Model):
    """
    Append-only audit trail of distribution events.
    Rows are never updated once written.
    """

    class EventStatus(models.TextChoices):
        SUCCESS = 'success', 'Success'
        FAILURE = 'failure', 'Failure'
        INFO = 'info', 'Info'
        WARNING = 'warning', 'Warning'

    lead = models.ForeignKey(
        Lead,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='logs'
    )
    rotation = models.ForeignKey(
        Rotation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='logs'
    )
    slot = models.ForeignKey(
        ParticipantSlot,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='logs'
    )
    event_type = models.CharField(max_length=50, db_index=True)
    status = models.CharField(
        max_length=10,
        choices=EventStatus.choices,
        default=EventStatus.INFO,
        db_index=True
    )
    message = models.TextField()
    details = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    error_details = models.TextField(null=True, blank=True)
    source_url = models.CharField(max_length=500, null=True, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, null=True, blank=True)
    response_time_ms = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['rotation', 'created_at'], name='leadlog_rotation_created_idx'),
            models.Index(fields=['event_type', 'created_at'], name='leadlog_event_created_idx'),
        ]

    def __str__(self):
        return f"[{self.status}] {self.event_type}: {self.message}"
