"""
Incident and diagnosis records.

CRUD for these lives outside the retrieval engine; the engine only reads
them by id to build embedding and query text.
"""
from django.db import models

from apps.common.models import TimestampedModel


class Severity(models.TextChoices):
    CRITICAL = 'CRITICAL', 'Critical'
    HIGH = 'HIGH', 'High'
    MEDIUM = 'MEDIUM', 'Medium'
    LOW = 'LOW', 'Low'
    INFO = 'INFO', 'Info'


class IncidentStatus(models.TextChoices):
    OPEN = 'OPEN', 'Open'
    ACKNOWLEDGED = 'ACK', 'Acknowledged'
    DIAGNOSED = 'DIAGNOSED', 'Diagnosed'
    RESOLVED = 'RESOLVED', 'Resolved'


class Incident(TimestampedModel):
    """An operational incident raised by an alert source or entered manually."""
    source = models.CharField(
        max_length=100,
        default='manual',
        help_text="Origin of the incident (cloudwatch, sentry, pagerduty, manual, ...)"
    )
    title = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    severity = models.CharField(
        max_length=16,
        choices=Severity.choices,
        default=Severity.MEDIUM
    )
    status = models.CharField(
        max_length=16,
        choices=IncidentStatus.choices,
        default=IncidentStatus.OPEN
    )
    resolution_text = models.TextField(
        blank=True,
        default='',
        help_text="How the incident was resolved, filled in on close"
    )

    class Meta:
        db_table = 'incidents'
        ordering = ['-created_at']

    def __str__(self):
        return f"#{self.pk} {self.title}"


class Diagnosis(TimestampedModel):
    """AI-suggested diagnosis for an incident, optionally verified by an operator."""
    incident = models.ForeignKey(
        Incident,
        on_delete=models.CASCADE,
        related_name='diagnoses'
    )
    suggested_root_cause = models.TextField(blank=True)
    remediation_steps = models.JSONField(
        default=list,
        blank=True,
        help_text="Ordered list of remediation step descriptions"
    )
    verified = models.BooleanField(default=False)
    verified_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'diagnoses'
        ordering = ['-created_at']

    def __str__(self):
        return f"Diagnosis #{self.pk} for incident #{self.incident_id}"
