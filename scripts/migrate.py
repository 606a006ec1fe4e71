"""Apply or roll back the clinic scheduler schema migrations.

Usage:
    python scripts/migrate.py                 upgrade to head
    python scripts/migrate.py down <revision> roll back to a revision
    python scripts/migrate.py current         show the applied revision
"""

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"


def _config() -> Config:
    cfg = Config(str(ALEMBIC_INI))
    cfg.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    return cfg


def upgrade(revision: str = "head") -> None:
    """Bring the scheduling tables up to a revision."""
    try:
        print(f"Upgrading schema to {revision}...")
        command.upgrade(_config(), revision)
        print("✓ Schema is up to date")
    except Exception as e:
        print(f"✗ Upgrade failed: {e}", file=sys.stderr)
        sys.exit(1)


def downgrade(revision: str) -> None:
    """Roll the scheduling tables back to a revision."""
    try:
        print(f"Rolling schema back to {revision}...")
        command.downgrade(_config(), revision)
        print("✓ Rollback complete")
    except Exception as e:
        print(f"✗ Rollback failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    args = sys.argv[1:]
    if not args:
        upgrade()
    elif args[0] == "down" and len(args) == 2:
        downgrade(args[1])
    elif args[0] == "current":
        command.current(_config(), verbose=True)
    else:
        print(__doc__)
        sys.exit(2)
