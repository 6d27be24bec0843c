from gitsync.models.agreement import Agreement, AgreementParticipant, AgreementStatus
from gitsync.models.commit_log import CommitLog
from gitsync.models.git_branch import GitBranch, GitBranchCommit
from gitsync.models.project import Project
from gitsync.models.user import User

__all__ = [
    "Agreement",
    "AgreementParticipant",
    "AgreementStatus",
    "CommitLog",
    "GitBranch",
    "GitBranchCommit",
    "Project",
    "User",
]
