"""Monthly clinic reports."""

from collections import Counter
from datetime import datetime
from uuid import UUID
from zoneinfo import ZoneInfo

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.exceptions import ValidationException
from clinic_scheduler.repositories.base import Storage
from clinic_scheduler.schemas.appointments import AppointmentKind, AppointmentStatus
from clinic_scheduler.schemas.reports import MonthlyReport


class ReportService:
    """Aggregates appointment metrics."""

    def __init__(self, storage: Storage, settings: Settings | None = None):
        """Initialize service with storage."""
        self.storage = storage
        self.settings = settings or get_settings()

    async def monthly_report(self, clinic_id: UUID, year: int, month: int) -> MonthlyReport:
        """
        Build the report of appointments starting in a calendar month.

        Months are taken in the clinic time zone. The no-show rate is the
        percentage of no-shows over all appointments, rounded to two decimals.

        Raises:
            ValidationException: Month out of range
        """
        if not 1 <= month <= 12:
            raise ValidationException("Month must be between 1 and 12")

        tz = ZoneInfo(self.settings.clinic_timezone)
        start = datetime(year, month, 1, tzinfo=tz)
        if month == 12:
            end = datetime(year + 1, 1, 1, tzinfo=tz)
        else:
            end = datetime(year, month + 1, 1, tzinfo=tz)

        rows = await self.storage.appointments.list_in_range(start, end, clinic_id=clinic_id)
        # Only appointments starting inside the month count towards it
        rows = [a for a in rows if start <= a.start_at < end]

        by_status = Counter(a.status.value for a in rows)
        by_kind = Counter({kind.value: 0 for kind in AppointmentKind})
        by_kind.update(a.kind.value for a in rows)
        by_doctor = Counter(str(a.doctor_id) for a in rows)
        # Self-pay visits have no insurer to bill
        by_insurer = Counter(
            str(a.insurance.insurer_id)
            for a in rows
            if a.kind == AppointmentKind.INSURANCE and a.insurance is not None
        )

        total = len(rows)
        no_shows = by_status.get(AppointmentStatus.NO_SHOW.value, 0)
        no_show_rate = round(no_shows / total * 100, 2) if total else 0.0

        return MonthlyReport(
            clinic_id=clinic_id,
            year=year,
            month=month,
            total=total,
            by_status=dict(by_status),
            by_kind=dict(by_kind),
            by_doctor=dict(by_doctor),
            by_insurer=dict(by_insurer),
            no_show_rate=no_show_rate,
        )
