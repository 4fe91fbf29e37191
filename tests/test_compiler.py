"""Tests for rule compilation and the rule-id layout."""

import math

import pytest
from urlsweep.engine.compiler import compile_rules, merge_trackers
from urlsweep.engine.models import AllowRule, RemovalRule, RuleKind, RuleSlot, rule_id, slot_for_id
from urlsweep.errors import RuleIdOverflow


def _removals(rules):
    return [r for r in rules if isinstance(r, RemovalRule)]


def _allows(rules):
    return [r for r in rules if isinstance(r, AllowRule)]


@pytest.mark.parametrize("size", [1, 99, 100, 101, 250, 1000])
def test_chunk_coverage(size):
    """ceil(N/100) removal rules and every tracker in exactly one chunk."""
    trackers = [f"param_{i}" for i in range(size)]
    rules = compile_rules(trackers, [])

    removals = _removals(rules)
    assert len(removals) == math.ceil(size / 100)
    members = [p for rule in removals for p in rule.chunk]
    assert len(members) == size
    assert set(members) == set(trackers)
    assert all(len(rule.chunk) <= 100 for rule in removals)


def test_duplicates_are_collapsed():
    rules = compile_rules(["fbclid", "gclid", "fbclid"], [])
    assert rules[0].chunk == ["fbclid", "gclid"]


def test_removal_ids_increase_from_base_and_allow_ids_follow_list_order():
    trackers = [f"p{i:03d}" for i in range(201)]
    rules = compile_rules(trackers, ["a.com", "b.com"])

    assert [r.id for r in _removals(rules)] == [1, 2, 3]
    assert [(r.id, r.domain) for r in _allows(rules)] == [(10000, "a.com"), (10001, "b.com")]
    # removal rules come first
    assert isinstance(rules[0], RemovalRule)
    assert isinstance(rules[-1], AllowRule)


def test_allow_rules_outrank_removal_rules():
    rules = compile_rules([f"p{i}" for i in range(150)], ["a.com", "b.com"])
    for allow in _allows(rules):
        for removal in _removals(rules):
            assert allow.priority > removal.priority


def test_empty_inputs():
    assert compile_rules([], []) == []
    assert _removals(compile_rules([], ["a.com"])) == []
    assert _allows(compile_rules(["fbclid"], [])) == []


def test_rule_count_is_deterministic():
    trackers = {f"p{i}" for i in range(345)}
    assert len(compile_rules(trackers, ["a.com"])) == len(compile_rules(set(trackers), ["a.com"])) == 5


def test_declarative_shapes():
    removal, allow = compile_rules(["fbclid"], ["a.com"])

    assert removal.to_declarative()["action"] == {
        "type": "redirect",
        "redirect": {"transform": {"queryTransform": {"removeParams": ["fbclid"]}}},
    }
    assert "main_frame" in removal.to_declarative()["condition"]["resourceTypes"]

    rendered = allow.to_declarative()
    assert rendered["action"] == {"type": "allowAllRequests"}
    assert rendered["condition"]["requestDomains"] == ["a.com"]
    assert rendered["priority"] == 100


def test_id_ranges_never_overlap():
    last_removal = rule_id(RuleSlot(RuleKind.REMOVAL, 4998))
    custom = rule_id(RuleSlot(RuleKind.CUSTOM))
    first_allow = rule_id(RuleSlot(RuleKind.ALLOW, 0))
    assert last_removal < custom < first_allow

    with pytest.raises(RuleIdOverflow):
        rule_id(RuleSlot(RuleKind.REMOVAL, 4999))
    with pytest.raises(RuleIdOverflow):
        rule_id(RuleSlot(RuleKind.CUSTOM, 1))
    with pytest.raises(RuleIdOverflow):
        rule_id(RuleSlot(RuleKind.ALLOW, -1))


def test_slot_for_id_inverts_rule_id():
    for slot in [RuleSlot(RuleKind.REMOVAL, 0), RuleSlot(RuleKind.CUSTOM, 0), RuleSlot(RuleKind.ALLOW, 7)]:
        assert slot_for_id(rule_id(slot)) == slot
    with pytest.raises(RuleIdOverflow):
        slot_for_id(0)


def test_merge_trackers_keeps_first_seen_order():
    assert merge_trackers(["b", "a"], ["a", "c"], []) == ["b", "a", "c"]
