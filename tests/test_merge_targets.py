"""Tests for hub/local target reconciliation."""

from __future__ import annotations

from dataclasses import replace

from targets.merge import merge_targets_from_hub
from tests.utils import confirmed, temp


def test_empty_prev_returns_incoming() -> None:
    incoming = [confirmed(1, 0.1), confirmed(2, 0.2)]

    assert merge_targets_from_hub([], incoming) == incoming


def test_empty_push_is_non_destructive() -> None:
    prev = [confirmed(1, 0.1), temp("t1", 0.2)]

    assert merge_targets_from_hub(prev, []) == prev


def test_confirmed_push_supersedes_matching_temp() -> None:
    prev = [temp("t1", 0.5, 1.10, 1.20)]
    incoming = [confirmed(42, 0.5, 1.10, 1.20)]

    merged = merge_targets_from_hub(prev, incoming)

    assert merged == [confirmed(42, 0.5, 1.10, 1.20)]


def test_delta_push_keeps_unmentioned_confirmed_entries() -> None:
    prev = [confirmed(7, 0.2)]
    incoming = [confirmed(9, 0.3)]

    merged = merge_targets_from_hub(prev, incoming)

    assert [t.id for t in merged] == [9, 7]


def test_incoming_is_authoritative_for_known_ids() -> None:
    prev = [confirmed(7, 0.2, 1.0, 2.0)]
    incoming = [confirmed(7, 0.4, 1.1, 2.1)]

    merged = merge_targets_from_hub(prev, incoming)

    assert merged == incoming


def test_incoming_duplicates_keep_first_occurrence() -> None:
    prev = [confirmed(1, 0.1)]
    incoming = [confirmed(5, 0.2), confirmed(5, 0.9), confirmed(6, 0.3)]

    merged = merge_targets_from_hub(prev, incoming)

    assert [(t.id, t.lot_size) for t in merged] == [(5, 0.2), (6, 0.3), (1, 0.1)]


def test_unmatched_temp_survives_push() -> None:
    pending = temp("t1", 0.25, 1.05, 1.30)
    prev = [confirmed(1, 0.1), pending]
    incoming = [confirmed(1, 0.1)]

    merged = merge_targets_from_hub(prev, incoming)

    assert merged == [confirmed(1, 0.1), pending]


def test_id_less_incoming_entries_are_kept_after_id_bearing_ones() -> None:
    minimal = replace(confirmed(1, 0.3), id=None)
    prev = [confirmed(2, 0.1)]
    incoming = [minimal, confirmed(3, 0.2)]

    merged = merge_targets_from_hub(prev, incoming)

    assert merged == [confirmed(3, 0.2), minimal, confirmed(2, 0.1)]


def test_id_less_incoming_entry_supersedes_matching_temp() -> None:
    minimal = replace(confirmed(1, 0.3, 1.0, 2.0), id=None)
    prev = [temp("t1", 0.3, 1.0, 2.0)]

    merged = merge_targets_from_hub(prev, [minimal])

    assert merged == [minimal]


def test_identical_temps_are_not_deduplicated_against_each_other() -> None:
    first = temp("t1", 0.2, 1.0, 2.0)
    second = temp("t2", 0.2, 1.0, 2.0)

    merged = merge_targets_from_hub([first, second], [confirmed(9, 0.5)])

    assert merged == [confirmed(9, 0.5), first, second]


def test_temp_matching_retained_confirmed_entry_is_dropped() -> None:
    prev = [confirmed(4, 0.2, 1.0, 2.0), temp("t1", 0.2, 1.0, 2.0)]

    merged = merge_targets_from_hub(prev, [confirmed(9, 0.5)])

    assert merged == [confirmed(9, 0.5), confirmed(4, 0.2, 1.0, 2.0)]


def test_merge_is_idempotent() -> None:
    minimal = replace(confirmed(1, 0.15), id=None)
    prev = [
        confirmed(7, 0.2),
        temp("t1", 0.5, 1.10, 1.20),
        temp("t2", 0.1, 1.00, 1.40),
        confirmed(8, 0.05),
    ]
    incoming = [confirmed(42, 0.5, 1.10, 1.20), confirmed(8, 0.06), minimal, confirmed(42, 0.9)]

    once = merge_targets_from_hub(prev, incoming)
    twice = merge_targets_from_hub(once, incoming)

    assert twice == once
    assert [t.id for t in once] == [42, 8, None, 7, None]
