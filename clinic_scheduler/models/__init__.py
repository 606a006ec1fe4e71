"""Database models."""

from clinic_scheduler.models.appointments import appointments, metadata
from clinic_scheduler.models.audit_logs import audit_logs
from clinic_scheduler.models.doctors import doctors
from clinic_scheduler.models.notifications import notification_intents
from clinic_scheduler.models.waitlist import waitlist_entries

__all__ = [
    "appointments",
    "audit_logs",
    "doctors",
    "metadata",
    "notification_intents",
    "waitlist_entries",
]
