from gitsync.domain.branch_operations import branch_commit_ops, branch_ops
from gitsync.domain.commit_log_operations import commit_log_ops
from gitsync.domain.project_operations import project_ops

__all__ = [
    "branch_ops",
    "branch_commit_ops",
    "commit_log_ops",
    "project_ops",
]
