import uuid as uuid_pkg
from datetime import UTC, datetime

from sqlalchemy import DateTime, text
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """
    Platform user.

    Commit authors are matched to users by email and by GitHub username.
    The GitHub token is stored Fernet-encrypted (see core.encryption).
    """

    __tablename__ = "users"

    id: uuid_pkg.UUID = Field(
        default_factory=uuid_pkg.uuid4,
        primary_key=True,
        index=True,
        nullable=False,
    )
    email: str | None = Field(default=None, max_length=255, index=True)
    display_name: str | None = Field(default=None, max_length=100)
    github_username: str | None = Field(default=None, max_length=255, index=True)
    github_token: str | None = Field(
        default=None,
        max_length=1000,
        description="Encrypted GitHub access token used for background sync",
    )

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )
    updated_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": text("now()")},
    )
