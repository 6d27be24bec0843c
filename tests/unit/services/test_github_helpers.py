"""Unit tests for GitHub helpers and response types.

Covers rate limit header parsing, repository path normalization, Link
header pagination and error response classification.
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from gitsync.core.result import Err, ErrorKind, Ok
from gitsync.services.github.helpers import (
    RateLimitInfo,
    classify_error_response,
    extract_repo_path,
    last_page_from_link,
    parse_link_header,
)
from gitsync.services.github.types import Branch, ChangedFile, FullCommit, ShallowCommit

from tests.helpers.github import commit_detail_payload, commit_payload, make_response

LINK = (
    '<https://api.github.com/repos/acme/widgets/commits?sha=main&per_page=1&page=2>; rel="next", '
    '<https://api.github.com/repos/acme/widgets/commits?sha=main&per_page=1&page=34>; rel="last"'
)


# ═══════════════════════════════════════════════════════════════════════════
# RateLimitInfo
# ═══════════════════════════════════════════════════════════════════════════


class TestRateLimitInfo:
    """Tests for rate limit header parsing."""

    def test_extracts_remaining_and_reset(self):
        resp = make_response(
            headers={
                "X-RateLimit-Remaining": "42",
                "X-RateLimit-Reset": "1700000000",
            }
        )
        info = RateLimitInfo(resp)

        assert info.remaining == "42"
        assert info.reset_timestamp == 1700000000
        assert info.is_exhausted is False

    def test_detects_exhausted(self):
        resp = make_response(headers={"X-RateLimit-Remaining": "0"})
        assert RateLimitInfo(resp).is_exhausted is True

    def test_retry_after(self):
        resp = make_response(headers={"Retry-After": "30"})
        assert RateLimitInfo(resp).retry_after_seconds == 30

    def test_missing_headers(self):
        info = RateLimitInfo(make_response(headers={}))

        assert info.remaining is None
        assert info.reset_timestamp is None
        assert info.retry_after_seconds is None
        assert info.is_exhausted is False


# ═══════════════════════════════════════════════════════════════════════════
# extract_repo_path
# ═══════════════════════════════════════════════════════════════════════════


class TestExtractRepoPath:
    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/acme/widgets",
            "https://github.com/acme/widgets.git",
            "https://github.com/acme/widgets/",
            "git@github.com:acme/widgets.git",
            "acme/widgets",
            "  acme/widgets  ",
        ],
    )
    def test_normalizes_to_owner_repo(self, url):
        assert extract_repo_path(url) == "acme/widgets"

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_blank_returns_none(self, url):
        assert extract_repo_path(url) is None


# ═══════════════════════════════════════════════════════════════════════════
# Link header pagination
# ═══════════════════════════════════════════════════════════════════════════


class TestLinkHeader:
    def test_parses_rels(self):
        links = parse_link_header(LINK)

        assert set(links) == {"next", "last"}
        assert links["last"].endswith("page=34")

    def test_empty_header(self):
        assert parse_link_header(None) == {}
        assert parse_link_header("") == {}

    def test_last_page_from_rel_last(self):
        assert last_page_from_link(LINK, 1) == Ok(34)

    def test_no_last_link_means_current_page(self):
        assert last_page_from_link(None, 3) == Ok(3)

    def test_ignores_per_page_parameter(self):
        link = '<https://api.github.com/x?page=7&per_page=100>; rel="last"'
        assert last_page_from_link(link, 1) == Ok(7)

    def test_unparseable_last_link_is_decode_error(self):
        result = last_page_from_link('<https://api.github.com/x?cursor=abc>; rel="last"', 1)

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.DECODE_ERROR


# ═══════════════════════════════════════════════════════════════════════════
# classify_error_response
# ═══════════════════════════════════════════════════════════════════════════


class TestClassifyErrorResponse:
    def test_success_is_none(self):
        assert classify_error_response(make_response(200, []), "r") is None

    def test_403_with_exhausted_quota_is_rate_limited(self):
        resp = make_response(
            403,
            {"message": "API rate limit exceeded"},
            {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
        )
        error = classify_error_response(resp, "r")

        assert error.kind == ErrorKind.RATE_LIMITED
        assert error.reset_at == 1700000000

    def test_429_is_rate_limited(self):
        error = classify_error_response(make_response(429, {}), "r")
        assert error.kind == ErrorKind.RATE_LIMITED

    def test_secondary_limit_uses_retry_after(self):
        resp = make_response(403, {}, {"Retry-After": "30"})

        with patch("gitsync.services.github.helpers.time.time", return_value=1_700_000_000):
            error = classify_error_response(resp, "r")

        assert error.kind == ErrorKind.RATE_LIMITED
        assert error.reset_at == 1_700_000_030

    def test_plain_403_is_forbidden(self):
        resp = make_response(403, {}, {"X-RateLimit-Remaining": "4000"})
        assert classify_error_response(resp, "r").kind == ErrorKind.FORBIDDEN

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ErrorKind.UNAUTHORIZED),
            (404, ErrorKind.NOT_FOUND),
            (409, ErrorKind.API_ERROR),
            (500, ErrorKind.API_ERROR),
            (502, ErrorKind.API_ERROR),
        ],
    )
    def test_status_mapping(self, status, kind):
        assert classify_error_response(make_response(status, {}), "r").kind == kind


# ═══════════════════════════════════════════════════════════════════════════
# Response types
# ═══════════════════════════════════════════════════════════════════════════


class TestCommitTypes:
    def test_shallow_commit_from_list_item(self):
        commit = ShallowCommit.from_api(commit_payload("abc123", email="Dev@Example.com", login="devgh"))

        assert commit.sha == "abc123"
        assert commit.author_email == "Dev@Example.com"
        assert commit.author_login == "devgh"
        assert commit.committed_at == datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
        assert commit.html_url == "https://github.com/acme/widgets/commit/abc123"

    def test_identifier_prefers_lowercased_email(self):
        commit = ShallowCommit.from_api(commit_payload("a", email="Dev@Example.com", login="devgh"))
        assert commit.author_identifier == "dev@example.com"

    def test_identifier_falls_back_to_login(self):
        commit = ShallowCommit.from_api(commit_payload("a", email=None, login="devgh"))
        assert commit.author_identifier == "devgh"

    def test_identifier_none_without_email_or_login(self):
        commit = ShallowCommit.from_api(commit_payload("a", email="", login=None))
        assert commit.author_identifier is None

    def test_full_commit_carries_stats_and_files(self):
        commit = FullCommit.from_api(commit_detail_payload("abc123", additions=12, deletions=4))

        assert commit.additions == 12
        assert commit.deletions == 4
        assert commit.changed_files == [
            ChangedFile("src/abc123.py", "modified", 12, 4, "@@ -1 +1 @@"),
        ]
        assert commit.changed_files[0].to_dict()["filename"] == "src/abc123.py"

    def test_full_commit_without_stats_defaults_to_zero(self):
        commit = FullCommit.from_api(commit_payload("abc123"))

        assert commit.additions == 0
        assert commit.deletions == 0
        assert commit.changed_files == []

    def test_missing_sha_raises(self):
        with pytest.raises(KeyError):
            ShallowCommit.from_api({"commit": {}})

    def test_branch_from_api(self):
        branch = Branch.from_api({"name": "main", "commit": {"sha": "abc"}, "protected": True})
        assert branch == Branch("main", "abc", True)
