"""
Commit and branch sync package.

Module structure:
- identity.py: Commit author to user resolution
- branches.py: Branch discovery and ownership attribution
- commits.py: Incremental, deduplicated commit sync per branch
- enrichment.py: Diff stats backfill for shallow commits
- service.py: Orchestration and persistence
- polling.py: Scheduled polling cycle over all connected projects
"""

from gitsync.services.sync.branches import BranchDiscoveryEngine, BranchOwnership
from gitsync.services.sync.commits import CommitSyncEngine, CommitSyncResult
from gitsync.services.sync.enrichment import EnrichmentResult, StatsEnrichmentEngine
from gitsync.services.sync.identity import IdentityResolver
from gitsync.services.sync.polling import GitHubPoller, PollingReport
from gitsync.services.sync.service import (
    BranchSyncReport,
    GitHubSyncService,
    ProjectSyncReport,
    resolve_project_token,
)

__all__ = [
    "BranchDiscoveryEngine",
    "BranchOwnership",
    "BranchSyncReport",
    "CommitSyncEngine",
    "CommitSyncResult",
    "EnrichmentResult",
    "GitHubPoller",
    "GitHubSyncService",
    "IdentityResolver",
    "PollingReport",
    "ProjectSyncReport",
    "StatsEnrichmentEngine",
    "resolve_project_token",
]
