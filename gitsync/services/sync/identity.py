"""
Commit author to platform user resolution.

A resolver is built once per project run from the project owner plus the
participants of the project's active agreements. Lookups are in-memory
after that.
"""

import logging
import uuid as uuid_pkg

from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.domain.project_operations import ProjectOperations, project_ops
from gitsync.models.agreement import Agreement
from gitsync.models.project import Project
from gitsync.models.user import User
from gitsync.services.github.types import ShallowCommit

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Maps author emails and GitHub logins to user IDs for one project."""

    def __init__(self, users: list[User], agreements: list[Agreement]) -> None:
        self.agreements = agreements
        self.user_emails: dict[str, uuid_pkg.UUID] = {}
        self.user_logins: dict[str, uuid_pkg.UUID] = {}

        for user in users:
            if user.email:
                self.user_emails[user.email.lower()] = user.id
            if user.github_username:
                self.user_logins[user.github_username.lower()] = user.id

    @classmethod
    async def for_project(
        cls,
        db: AsyncSession,
        project: Project,
        projects: ProjectOperations = project_ops,
    ) -> "IdentityResolver":
        """Load the owner and active-agreement participants of a project."""
        agreements = await projects.get_active_agreements(db, project.id)

        user_ids = {project.user_id}
        for agreement in agreements:
            user_ids.update(p.user_id for p in agreement.participants)

        users = await projects.get_users_by_ids(db, user_ids)
        logger.debug(
            f"[sync] Identity map for project {project.id}: {len(users)} users, "
            f"{len(agreements)} active agreements"
        )
        return cls(users, agreements)

    def find_user_id(
        self,
        identifier: str | None,
        commit: ShallowCommit | None = None,
    ) -> uuid_pkg.UUID | None:
        """
        Resolve an author identifier to a user ID.

        Order: email match, then the login GitHub attached to the commit,
        then the identifier itself as a login. First match wins.
        """
        if not identifier or not identifier.strip():
            return None

        key = identifier.strip().lower()

        user_id = self.user_emails.get(key)
        if user_id:
            return user_id

        if commit is not None and commit.author_login:
            user_id = self.user_logins.get(commit.author_login.lower())
            if user_id:
                return user_id

        return self.user_logins.get(key)

    def agreement_for(self, user_id: uuid_pkg.UUID | None) -> Agreement | None:
        """First active agreement the user participates in."""
        if user_id is None:
            return None
        for agreement in self.agreements:
            if any(p.user_id == user_id for p in agreement.participants):
                return agreement
        return None

    def is_registered(self, identifier: str | None) -> bool:
        return self.find_user_id(identifier) is not None
