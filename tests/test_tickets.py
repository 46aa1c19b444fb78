from __future__ import annotations

import pytest

from devbuddy_mcp.paths import repository_id_for, same_path, workspace_key
from devbuddy_mcp.tickets import TicketId, prefixes_from_branches


def test_parse_normalizes_prefix_case() -> None:
    ticket = TicketId.parse("eng-42")

    assert ticket.prefix == "ENG"
    assert ticket.number == "42"
    assert str(ticket) == "ENG-42"


def test_parse_keeps_leading_zeros() -> None:
    assert str(TicketId.parse("ENG-007")) == "ENG-007"


@pytest.mark.parametrize("value", ["ENG", "ENG-", "-42", "ENG-4a", "feature/ENG-42", "EN G-1"])
def test_parse_rejects_malformed_keys(value: str) -> None:
    with pytest.raises(ValueError):
        TicketId.parse(value)
    assert TicketId.try_parse(value) is None


def test_constructor_validates_parts() -> None:
    with pytest.raises(ValueError):
        TicketId(prefix="EN1", number="1")
    with pytest.raises(ValueError):
        TicketId(prefix="ENG", number="")


def test_from_branch_only_accepts_upper_case_keys() -> None:
    assert str(TicketId.from_branch("feature/ENG-12-login-form")) == "ENG-12"
    assert TicketId.from_branch("feature/eng-12-login-form") is None
    assert TicketId.from_branch("main") is None


def test_prefixes_from_branches_collects_distinct_prefixes() -> None:
    branches = ["main", "feature/fe-1-nav", "FE-2", "bugfix/FRONT-9", "remotes/origin/OPS-1", "X-1"]

    assert prefixes_from_branches(branches) == ["FE", "FRONT"]


def test_repository_id_and_workspace_key(tmp_path) -> None:
    repo = tmp_path / "Backend API"
    repo.mkdir()

    assert repository_id_for(repo) == "backend-api"
    key = workspace_key(repo)
    assert key.startswith("backend-api-")
    assert key == workspace_key(str(repo) + "/")


def test_same_path_normalizes_and_rejects_missing(tmp_path) -> None:
    assert same_path(tmp_path / "a" / ".." / "b", tmp_path / "b")
    assert not same_path(None, tmp_path)
