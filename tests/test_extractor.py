"""Tests for upstream parameter extraction."""

import pytest
from urlsweep.engine.extractor import extract_parameters, parse_feed
from urlsweep.errors import ParseFailure


def test_extracts_literal_tokens_only():
    """Short tokens and regex syntax are dropped."""
    providers = {"p1": {"rules": ["utm_source", "fbclid", "(?:x)"]}}
    assert extract_parameters(providers) == {"utm_source", "fbclid"}


def test_tokens_inside_regex_patterns():
    providers = {
        "amazon": {
            "rules": ["(?:&|[/?#&])(?:tracking=)([^&]*)", "pd_rd_[a-z]*"],
            "referralMarketing": ["tag"],
        },
    }
    assert extract_parameters(providers) == {"tracking", "pd_rd_", "a-z", "tag"}


def test_stoplist_and_length_filter():
    providers = {"p": {"rules": ["amp", "html", "http", "ab", "abc", "ref.src", "x-id"]}}
    assert extract_parameters(providers) == {"abc", "ref.src", "x-id"}


def test_union_across_providers_and_categories():
    providers = {
        "google": {"rules": ["gclid", "utm_source"]},
        "facebook": {"rules": ["fbclid"], "referralMarketing": ["utm_source"]},
        "empty": {},
    }
    assert extract_parameters(providers) == {"gclid", "utm_source", "fbclid"}


def test_tokens_are_case_sensitive():
    providers = {"p": {"rules": ["Ref_ID", "ref_id"]}}
    assert extract_parameters(providers) == {"Ref_ID", "ref_id"}


def test_parse_feed_returns_providers():
    payload = {"providers": {"p1": {"rules": ["fbclid"]}}}
    assert parse_feed(payload) == {"p1": {"rules": ["fbclid"]}}


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"no_providers": {}},
        {"providers": []},
        {"providers": {"p1": "fbclid"}},
        {"providers": {"p1": {"rules": "fbclid"}}},
    ],
)
def test_parse_feed_rejects_unexpected_shapes(payload):
    with pytest.raises(ParseFailure):
        parse_feed(payload)
