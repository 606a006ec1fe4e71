"""Create waitlist entries table.

Revision ID: 002
Revises: 001
Create Date: 2026-09-14 00:10:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "waitlist_entries",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("clinic_id", postgresql.UUID(), nullable=False),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("specialty", sa.Text(), nullable=False),
        sa.Column("preferred_doctor_id", postgresql.UUID(), nullable=True),
        sa.Column("preferred_start_date", sa.Date(), nullable=False),
        sa.Column("preferred_end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.Text(), server_default="waiting", nullable=False),
        sa.Column("offered_appointment_id", postgresql.UUID(), nullable=True),
        sa.Column("offered_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("offer_expires_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.CheckConstraint(
            "status IN ('waiting', 'offered', 'accepted', 'expired')",
            name="waitlist_entries_status_check",
        ),
        sa.CheckConstraint(
            "preferred_end_date >= preferred_start_date",
            name="waitlist_entries_range_check",
        ),
        sa.ForeignKeyConstraint(
            ["offered_appointment_id"],
            ["appointments.id"],
            name="fk_waitlist_entries_offered_appointment",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(
        "ix_waitlist_entries_clinic_status_created",
        "waitlist_entries",
        ["clinic_id", "status", "created_at"],
    )
    op.create_index(
        "ix_waitlist_entries_offer_expires_at", "waitlist_entries", ["offer_expires_at"]
    )
    op.create_index(
        "uq_waitlist_entries_live_offer",
        "waitlist_entries",
        ["offered_appointment_id"],
        unique=True,
        postgresql_where=sa.text("status = 'offered'"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("uq_waitlist_entries_live_offer", table_name="waitlist_entries")
    op.drop_index("ix_waitlist_entries_offer_expires_at", table_name="waitlist_entries")
    op.drop_index("ix_waitlist_entries_clinic_status_created", table_name="waitlist_entries")
    op.drop_table("waitlist_entries")
