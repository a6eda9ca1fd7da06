import pytest

from conftest import records, warnings_in
from models import CanonicalRole
from planning import (
    batch_size_for,
    compute_membership_diff,
    desired_channel_members,
    desired_channel_names,
    desired_team_members,
    normalize_identity,
    normalize_role,
)

M = CanonicalRole.MEMBER
O = CanonicalRole.OWNER


@pytest.mark.parametrize(
    "count,size",
    [(0, 25), (50, 25), (51, 50), (200, 50), (201, 75), (500, 75), (501, 100), (520, 100), (1000, 100), (1001, 150), (10**6, 150)],
)
def test_batch_size_steps(count, size):
    assert batch_size_for(count) == size


def test_batch_size_is_monotonic():
    sizes = [batch_size_for(n) for n in range(0, 2000)]
    assert sizes == sorted(sizes)


def test_batch_size_rejects_negative():
    with pytest.raises(ValueError):
        batch_size_for(-1)


def test_normalize_role_known_values(log_records):
    assert normalize_role("owner") is O
    assert normalize_role("MEMBER") is M
    assert normalize_role("  Owner ") is O
    assert warnings_in(log_records) == []


def test_normalize_role_unknown_falls_back_with_warning(log_records):
    assert normalize_role("admin", user="bob@x.com", channel="Eng") is M
    assert normalize_role("") is M
    assert normalize_role(None) is M

    warnings = warnings_in(log_records)
    assert len(warnings) == 3
    assert "admin" in warnings[0]
    assert "bob@x.com" in warnings[0]
    assert "Eng" in warnings[0]


def test_normalize_identity():
    assert normalize_identity("  Alice@Example.COM ") == "alice@example.com"


def test_desired_channel_names_keep_first_seen_order():
    recs = records(("a", "member", "Sales"), ("b", "member", "Eng"), ("c", "member", "Sales"))
    assert desired_channel_names(recs) == ["Sales", "Eng"]


def test_desired_team_members_are_distinct_members():
    recs = records(("a", "owner", "Sales"), ("b", "member", "Eng"), ("a", "member", "Eng"))
    assert desired_team_members(recs) == {"a": M, "b": M}
    assert list(desired_team_members(recs)) == ["a", "b"]


def test_desired_channel_members_last_write_wins():
    recs = records(
        ("a", "member", "Eng"),
        ("b", "member", "Eng"),
        ("a", "owner", "Eng"),
        ("a", "member", "Sales"),
    )
    lookup = desired_channel_members(recs)
    assert lookup == {"Eng": {"a": O, "b": M}, "Sales": {"a": M}}
    assert list(lookup["Eng"]) == ["a", "b"]


def test_diff_adds_and_removes():
    diff = compute_membership_diff(
        current={"a": M, "b": M, "c": M},
        desired={"b": M, "d": O, "e": M},
    )
    assert diff.to_add == [("d", O), ("e", M)]
    assert diff.to_remove == ["a", "c"]


def test_diff_never_removes_owners():
    # bob is an owner and is missing from the sheet
    diff = compute_membership_diff(current={"bob": O, "amy": M}, desired={})
    assert "bob" not in diff.to_remove
    assert diff.to_remove == ["amy"]


def test_diff_keeps_existing_role_on_noop():
    diff = compute_membership_diff(current={"a": O}, desired={"a": M})
    assert diff.empty


@pytest.mark.parametrize(
    "current,desired",
    [
        ({}, {}),
        ({"a": M}, {}),
        ({}, {"a": M}),
        ({"a": M, "b": O, "c": M}, {"c": M, "d": M}),
        ({"a": O, "b": O}, {"c": O}),
        ({"x": M, "y": M}, {"x": O, "y": M, "z": M}),
    ],
)
def test_diff_properties(current, desired):
    diff = compute_membership_diff(current, desired)
    added = {u for u, _ in diff.to_add}
    removed = set(diff.to_remove)

    assert not added & set(current)
    assert not removed & set(desired)
    assert not added & removed
    assert all(current[u] is M for u in removed)
    # applying the diff yields every desired key
    assert (set(current) - removed) | added >= set(desired)
