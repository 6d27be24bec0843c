import uuid as uuid_pkg
from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, Relationship, SQLModel


class AgreementStatus(str, Enum):
    """Lifecycle of a collaboration agreement."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Agreement(SQLModel, table=True):
    """Collaboration agreement on a project.

    Commits by a participant of an active agreement are attributed to it.
    """

    __tablename__ = "agreements"

    id: uuid_pkg.UUID = Field(
        default_factory=uuid_pkg.uuid4,
        primary_key=True,
        nullable=False,
        sa_column_kwargs={"server_default": text("gen_random_uuid()")},
    )
    project_id: uuid_pkg.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    status: str = Field(default=AgreementStatus.PENDING.value, max_length=20, nullable=False)

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )

    participants: list["AgreementParticipant"] = Relationship(
        back_populates="agreement",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class AgreementParticipant(SQLModel, table=True):
    """A user taking part in an agreement."""

    __tablename__ = "agreement_participants"
    __table_args__ = (
        Index(
            "ix_agreement_participants_agreement_user",
            "agreement_id",
            "user_id",
            unique=True,
        ),
    )

    id: uuid_pkg.UUID = Field(
        default_factory=uuid_pkg.uuid4,
        primary_key=True,
        nullable=False,
        sa_column_kwargs={"server_default": text("gen_random_uuid()")},
    )
    agreement_id: uuid_pkg.UUID = Field(foreign_key="agreements.id", nullable=False)
    user_id: uuid_pkg.UUID = Field(foreign_key="users.id", nullable=False, index=True)

    agreement: Optional[Agreement] = Relationship(back_populates="participants")
