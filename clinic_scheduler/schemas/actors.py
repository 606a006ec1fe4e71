"""Actor schemas: who performs an operation."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ActorRole(str, Enum):
    """Actor role enumeration."""

    ADMIN = "admin"
    SECRETARY = "secretary"
    DOCTOR = "doctor"
    PATIENT = "patient"
    SYSTEM = "system"


class ActorClass(str, Enum):
    """Coarse actor class recorded on cancellations."""

    PATIENT = "patient"
    STAFF = "staff"
    SYSTEM = "system"


STAFF_ROLES = frozenset({ActorRole.ADMIN, ActorRole.SECRETARY, ActorRole.DOCTOR})


class Actor(BaseModel):
    """Identity reference supplied by the external auth system."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: ActorRole

    @property
    def actor_class(self) -> ActorClass:
        if self.role == ActorRole.PATIENT:
            return ActorClass.PATIENT
        if self.role == ActorRole.SYSTEM:
            return ActorClass.SYSTEM
        return ActorClass.STAFF

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @classmethod
    def system(cls, name: str = "system") -> "Actor":
        """Actor used by sweeps and other unattended jobs."""
        return cls(id=name, role=ActorRole.SYSTEM)
