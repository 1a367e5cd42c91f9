from django.conf import settings
from django.db import models

from core.models import Department, Schedule


class NotificationPreference(models.Model):
    department = models.ForeignKey(Department, on_delete=models.CASCADE)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    email_enabled = models.BooleanField(default=True)  # type: ignore[arg-type]

    class Meta:
        unique_together = ("department", "user")


class Notification(models.Model):
    CHANNEL_CHOICES = [
        ("email", "Email"),
    ]
    TYPE_CHOICES = [
        ("new_schedule", "Nova escala"),
        ("schedule_confirmed", "Escala confirmada"),
        ("schedule_declined", "Escala recusada"),
    ]
    STATUS_CHOICES = [
        ("pending", "Pendente"),
        ("sent", "Enviada"),
        ("failed", "Falhou"),
        ("skipped", "Ignorada"),
    ]
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="notifications")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    schedule = models.ForeignKey(
        Schedule, on_delete=models.SET_NULL, null=True, blank=True, related_name="notifications"
    )
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES, default="email")
    type = models.CharField(max_length=50, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField()
    idempotency_key = models.CharField(max_length=120)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = ("channel", "idempotency_key")
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.type} -> {self.user}"
