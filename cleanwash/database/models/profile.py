"""
Profile model for students and workers.

A profile row shares its primary key with the user record held by the hosted
auth platform; this service never creates credentials, it only reads the
residence and wash-quota attributes attached to the identity.
"""

import enum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum as SQLEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cleanwash.database.base import BaseModel


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values rather than member names."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    """Role of the identity behind a profile."""

    STUDENT = "student"
    WORKER = "worker"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """
        Convert string to UserRole enum.

        Raises:
            ValueError: If value is not a valid role
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join(r.value for r in cls)
            raise ValueError(
                f"Invalid role: {value}. Valid values are: {valid_values}"
            )


class Gender(str, enum.Enum):
    """Gender category shared by profiles and catalog items."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class Profile(BaseModel):
    """
    Student or worker profile.

    Attributes:
        id: Identity from the auth platform
        email: Address used for transactional email
        full_name: Display name
        role: Student or worker
        gender: Gender category, drives the catalog filter
        hostel: Hostel block of a student
        floor: Floor within the hostel block
        registration_number: Student registration number
        assigned_hostel: Hostel block a worker serves
        washes_left: Remaining washes in the student's quota
        total_washes: Washes allotted for the term
    """

    __tablename__ = "profiles"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Contact email address",
    )

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Display name",
    )

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", values_callable=enum_values),
        nullable=False,
        default=UserRole.STUDENT,
        index=True,
        comment="Student or worker",
    )

    gender: Mapped[Gender] = mapped_column(
        SQLEnum(Gender, name="gender_type", values_callable=enum_values),
        nullable=False,
        comment="Gender category",
    )

    hostel: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Hostel block",
    )

    floor: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Floor within hostel block",
    )

    registration_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Student registration number",
    )

    assigned_hostel: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Hostel block served by a worker",
    )

    washes_left: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=40,
        comment="Remaining washes in quota",
    )

    total_washes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=40,
        comment="Washes allotted for the term",
    )

    __table_args__ = (
        CheckConstraint("washes_left >= 0", name="ck_profiles_washes_left_non_negative"),
        CheckConstraint("total_washes >= 0", name="ck_profiles_total_washes_non_negative"),
    )

    @property
    def is_worker(self) -> bool:
        """Check if the profile belongs to a worker."""
        return self.role == UserRole.WORKER
