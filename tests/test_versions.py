"""Tests for capidocs.versions."""

from __future__ import annotations

import pytest

from capidocs.versions import (
    HEAD,
    UnknownVersionError,
    chronological,
    discover_versions,
    select_versions,
    sort_versions,
)


def test_sort_versions_orders_numerically() -> None:
    tags = ["v0.10.0", "v0.2.0", "v0.9.1", "v1.0.0", "v0.9.0"]

    assert sort_versions(tags) == ["v0.2.0", "v0.9.0", "v0.9.1", "v0.10.0", "v1.0.0"]


def test_prerelease_sorts_before_release() -> None:
    assert sort_versions(["1.0.0", "1.0.0-beta", "0.9.0"]) == ["0.9.0", "1.0.0-beta", "1.0.0"]


def test_discover_versions_drops_release_candidates_and_appends_head() -> None:
    tags = ["v2.0.0-rc1", "v1.0.0", "v2.0.0", "v1.1.0-rc", "v0.9.0"]

    assert discover_versions(tags) == ["v0.9.0", "v1.0.0", "v2.0.0", HEAD]


def test_discover_versions_keeps_head_last_with_no_tags() -> None:
    assert discover_versions([]) == [HEAD]


def test_select_versions_rejects_unknown_versions() -> None:
    with pytest.raises(UnknownVersionError) as excinfo:
        select_versions(["v1.0.0", HEAD], ["v1.0.0", "v3.0.0"])

    assert excinfo.value.versions == ["v3.0.0"]
    assert "v3.0.0" in str(excinfo.value)


def test_select_versions_without_request_returns_all() -> None:
    assert select_versions(["v1.0.0", HEAD], []) == ["v1.0.0", HEAD]


def test_chronological_keeps_head_last() -> None:
    assert chronological([HEAD, "v2.0.0", "v1.0.0"]) == ["v1.0.0", "v2.0.0", HEAD]
