"""Tests for URL cleaning and manual purification."""

import pytest
from urlsweep.errors import InvalidURL
from urlsweep.scrubber.cleaner import clean_url, purify, strip_pairs


def test_query_scrub():
    result = clean_url("https://example.com/?utm_source=a&id=5", {"utm_source"})
    assert result.url == "https://example.com/?id=5"
    assert result.removed_query == 1
    assert result.changed


def test_fragment_scrub_keeps_remaining_keys():
    result = clean_url("https://x.com/page#_rdc=1&_rdr", {"_rdc"})
    assert result.url == "https://x.com/page#_rdr"
    assert result.removed_fragment == 1


def test_fragment_fully_removed_leaves_no_hash():
    result = clean_url("https://x.com/page#_rdc=1", {"_rdc"})
    assert result.url == "https://x.com/page"


def test_all_query_params_removed_leaves_no_question_mark():
    result = clean_url("https://example.com/path?fbclid=abc&gclid=1", {"fbclid", "gclid"})
    assert result.url == "https://example.com/path"
    assert result.removed == 2


def test_query_and_fragment_counts_add_up():
    result = clean_url("https://example.com/?fbclid=1&q=ok#fbclid=2&x=1", {"fbclid"})
    assert result.url == "https://example.com/?q=ok#x=1"
    assert result.removed == 2


def test_fragment_without_equals_is_untouched():
    url = "https://example.com/?q=1#fbclid"
    result = clean_url(url, {"fbclid"})
    assert result.url == url
    assert not result.changed


def test_clean_is_idempotent():
    trackers = {"utm_source", "_rdc"}
    first = clean_url("https://example.com/a?utm_source=x&id=5#_rdc=1&tab=2", trackers)
    second = clean_url(first.url, trackers)
    assert first.changed
    assert not second.changed
    assert second.url == first.url


def test_unchanged_url_is_returned_verbatim():
    url = "https://example.com/?b=2&a=%20x"
    assert clean_url(url, {"fbclid"}).url == url


def test_kept_pairs_are_not_reencoded():
    result = clean_url("https://example.com/?q=a+b%2Fc&utm_source=x", {"utm_source"})
    assert result.url == "https://example.com/?q=a+b%2Fc"


def test_matching_is_case_sensitive_and_decodes_keys():
    trackers = {"utm source"}
    result = clean_url("https://example.com/?UTM%20SOURCE=1&utm+source=2", trackers)
    assert result.url == "https://example.com/?UTM%20SOURCE=1"


def test_repeated_keys_all_removed():
    result = clean_url("https://example.com/?fbclid=1&id=2&fbclid=3", {"fbclid"})
    assert result.url == "https://example.com/?id=2"
    assert result.removed == 2


@pytest.mark.parametrize("url", ["ftp://example.com/?fbclid=1", "not a url", "https://[::1/?fbclid=1"])
def test_invalid_urls_raise(url):
    with pytest.raises(InvalidURL):
        clean_url(url, {"fbclid"})


def test_strip_pairs_drops_empty_segments_only_when_changed():
    assert strip_pairs("a=1&&b=2", {"x"}) == ("a=1&&b=2", 0)
    assert strip_pairs("a=1&&x=2", {"x"}) == ("a=1", 1)


def test_purify_adds_scheme_and_strips_query_only():
    cleaned = purify("  example.com/p?utm_source=x&id=1#utm_source=y  ", {"utm_source"})
    assert cleaned == "https://example.com/p?id=1#utm_source=y"


def test_purify_empty_input():
    assert purify("   ", {"utm_source"}) is None


def test_purify_invalid_input_raises():
    with pytest.raises(InvalidURL):
        purify("https://[broken", {"utm_source"})
