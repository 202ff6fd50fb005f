"""Tests for the write allowlist and path template matching."""

from __future__ import annotations

import re

import pytest

from datadog_api_mcp.authz import (
    SAFE_POST_SUFFIXES,
    WRITE_ALLOWLIST,
    describe_allowed_writes,
    is_allowed_at_catalog_time,
    is_allowed_at_request_time,
    matches,
    policy_fingerprint,
)
from datadog_api_mcp.authz.allowlist import is_safe_post

BOTH_CHECKS = [is_allowed_at_catalog_time, is_allowed_at_request_time]

# ═══════════════════════════════════════════════════════════════════════
# Path pattern matcher
# ═══════════════════════════════════════════════════════════════════════


class TestMatches:
    def test_param_segment(self):
        assert matches("/a/{id}/b", "/a/123/b")

    def test_empty_param_segment_rejected(self):
        assert not matches("/a/{id}/b", "/a//b")

    def test_extra_segment(self):
        assert not matches("/a/{id}", "/a/123/extra")

    def test_missing_segment(self):
        assert not matches("/a/{id}", "/a")

    def test_literal_exact(self):
        assert matches("/a/b", "/a/b")

    def test_literal_case_sensitive(self):
        assert not matches("/a/b", "/A/b")

    def test_literal_mismatch(self):
        assert not matches("/a/b", "/a/c")

    def test_param_does_not_cross_slash(self):
        assert not matches("/a/{id}", "/a/1/2")

    def test_trailing_slash_changes_segment_count(self):
        assert not matches("/a/{id}", "/a/1/")

    def test_multiple_params(self):
        assert matches("/a/{x}/b/{y}", "/a/1/b/two")
        assert not matches("/a/{x}/b/{y}", "/a/1/c/two")

    def test_param_matches_braced_value(self):
        assert matches("/a/{id}", "/a/{id}")


# ═══════════════════════════════════════════════════════════════════════
# Shared tiers
# ═══════════════════════════════════════════════════════════════════════


class TestReadsAlwaysAllowed:
    @pytest.mark.parametrize("check", BOTH_CHECKS)
    @pytest.mark.parametrize("method", ["GET", "get", "HEAD", "head", "Get"])
    @pytest.mark.parametrize(
        "path",
        ["/api/v1/monitor", "/api/v2/logs/events/search", "", "//", "not-a-path"],
    )
    def test_reads(self, check, method, path):
        assert check(method, path) is True


class TestSafePost:
    @pytest.mark.parametrize("suffix", SAFE_POST_SUFFIXES)
    def test_each_suffix_allowed_both_times(self, suffix):
        path = f"/api/v2/things{suffix}"
        assert is_allowed_at_catalog_time("POST", path)
        assert is_allowed_at_request_time("post", path)

    def test_logs_search_allowed_without_allowlist_entry(self):
        assert is_allowed_at_request_time("POST", "/api/v2/logs/events/search")

    def test_suffix_only_applies_to_post(self):
        assert not is_allowed_at_request_time("PUT", "/api/v2/logs/events/search")
        assert not is_allowed_at_catalog_time("DELETE", "/api/v2/spans/analytics")

    def test_suffix_must_be_at_end(self):
        assert not is_safe_post("POST", "/api/v2/search/rules")

    def test_is_safe_post_normalizes_method(self):
        assert is_safe_post("post", "/api/v1/query")


class TestDenyByDefault:
    @pytest.mark.parametrize("check", BOTH_CHECKS)
    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/v1/monitor"),
            ("POST", "/api/v2/security_monitoring/rules"),
            ("PATCH", "/api/v2/incidents/{id}"),
            ("PATCH", "/api/v2/incidents/abc"),
            ("PUT", "/api/v1/monitor/123"),
            ("DELETE", "/api/v2/security_monitoring/rules/abc"),
        ],
    )
    def test_unlisted_writes_denied(self, check, method, path):
        assert check(method, path) is False

    @pytest.mark.parametrize("check", BOTH_CHECKS)
    @pytest.mark.parametrize("method", ["OPTIONS", "TRACE", "CONNECT", "FOO", ""])
    def test_unknown_methods_denied(self, check, method):
        assert check(method, "/api/v1/notebooks") is False

    @pytest.mark.parametrize("check", BOTH_CHECKS)
    def test_empty_path_write_denied(self, check):
        assert check("DELETE", "") is False


# ═══════════════════════════════════════════════════════════════════════
# Catalog time: literal comparison
# ═══════════════════════════════════════════════════════════════════════


class TestCatalogTime:
    def test_allowlisted_posts(self):
        assert is_allowed_at_catalog_time("POST", "/api/v1/notebooks")
        assert is_allowed_at_catalog_time("post", "/api/v1/dashboard")

    def test_allowlisted_templates(self):
        assert is_allowed_at_catalog_time("PUT", "/api/v1/notebooks/{notebook_id}")
        assert is_allowed_at_catalog_time("DELETE", "/api/v1/dashboard/{dashboard_id}")

    def test_concrete_path_not_accepted(self):
        assert not is_allowed_at_catalog_time("PUT", "/api/v1/notebooks/123")

    def test_differently_named_param_not_accepted(self):
        assert not is_allowed_at_catalog_time("PUT", "/api/v1/notebooks/{id}")

    def test_method_must_match_entry(self):
        assert not is_allowed_at_catalog_time("PATCH", "/api/v1/notebooks/{notebook_id}")


# ═══════════════════════════════════════════════════════════════════════
# Request time: pattern matching
# ═══════════════════════════════════════════════════════════════════════


class TestRequestTime:
    def test_allowlisted_posts(self):
        assert is_allowed_at_request_time("POST", "/api/v1/notebooks")
        assert is_allowed_at_request_time("POST", "/api/v1/dashboard")

    def test_concrete_params(self):
        assert is_allowed_at_request_time("PUT", "/api/v1/notebooks/12345")
        assert is_allowed_at_request_time("PUT", "/api/v1/dashboard/abc-def")
        assert is_allowed_at_request_time("DELETE", "/api/v1/notebooks/99")
        assert is_allowed_at_request_time("delete", "/api/v1/dashboard/dash-123")

    def test_missing_segment(self):
        assert not is_allowed_at_request_time("DELETE", "/api/v1/notebooks")

    def test_extra_segment(self):
        assert not is_allowed_at_request_time("PUT", "/api/v1/notebooks/123/extra")

    def test_empty_param(self):
        assert not is_allowed_at_request_time("DELETE", "/api/v1/notebooks/")

    def test_post_to_item_path_denied(self):
        assert not is_allowed_at_request_time("POST", "/api/v1/notebooks/123")


# ═══════════════════════════════════════════════════════════════════════
# Consistency between the two entry points
# ═══════════════════════════════════════════════════════════════════════

_PARAM_RE = re.compile(r"\{[^/]+\}")


class TestConsistency:
    @pytest.mark.parametrize("entry", WRITE_ALLOWLIST, ids=lambda e: f"{e.method} {e.path}")
    @pytest.mark.parametrize("value", ["1", "48213", "abc-def", "x_y.z"])
    def test_substituted_template_agrees(self, entry, value):
        concrete = _PARAM_RE.sub(value, entry.path)
        for method in ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"):
            assert is_allowed_at_request_time(method, concrete) == is_allowed_at_catalog_time(
                method, entry.path
            ), (method, concrete)

    @pytest.mark.parametrize(
        "template",
        ["/api/v1/monitor/{monitor_id}", "/api/v2/incidents/{incident_id}/relationships"],
    )
    def test_unlisted_templates_agree(self, template):
        concrete = _PARAM_RE.sub("42", template)
        for method in ("POST", "PUT", "PATCH", "DELETE"):
            assert is_allowed_at_request_time(method, concrete) is False
            assert is_allowed_at_catalog_time(method, template) is False


# ═══════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════


class TestHelpers:
    def test_describe_lists_every_entry(self):
        text = describe_allowed_writes()
        for entry in WRITE_ALLOWLIST:
            assert f"{entry.method} {entry.path}" in text

    def test_fingerprint_stable(self):
        assert policy_fingerprint() == policy_fingerprint()
        assert re.fullmatch(r"[0-9a-f]{64}", policy_fingerprint())

    def test_fingerprint_tracks_table(self, monkeypatch):
        from datadog_api_mcp.authz import allowlist

        before = policy_fingerprint()
        monkeypatch.setattr(allowlist, "SAFE_POST_SUFFIXES", ("/search",))
        assert allowlist.policy_fingerprint() != before

    def test_entries_are_frozen(self):
        with pytest.raises(AttributeError):
            WRITE_ALLOWLIST[0].method = "GET"  # type: ignore[misc]
