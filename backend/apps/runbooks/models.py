from django.db import models


class RunbookFragment(models.Model):
    """A section of an official runbook, embedded as knowledge for diagnosis."""
    title = models.CharField(max_length=255, blank=True)
    content = models.TextField(blank=True)
    tags = models.JSONField(
        default=list,
        blank=True,
        help_text="Free-form labels, e.g. ['database', 'postgres']"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'runbook_fragments'
        ordering = ['title']

    def __str__(self):
        return self.title
