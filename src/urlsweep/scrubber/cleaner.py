"""URL cleaning utilities - only remove tracking parameters."""

from dataclasses import dataclass
from typing import Collection, Optional, Tuple
from urllib.parse import unquote_plus, urlsplit, urlunsplit

from ..errors import InvalidURL

ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class CleanResult:
    """Outcome of cleaning one address."""

    url: str
    removed_query: int = 0
    removed_fragment: int = 0

    @property
    def removed(self) -> int:
        return self.removed_query + self.removed_fragment

    @property
    def changed(self) -> bool:
        return self.removed > 0


def strip_pairs(query: str, trackers: Collection[str]) -> Tuple[str, int]:
    """
    Remove tracker keys from a query-string-formatted string.

    Kept pairs are preserved verbatim, without re-encoding.

    Returns:
        (new string, number of pairs removed); the input is returned
        unchanged when nothing was removed
    """
    kept = []
    removed = 0
    for segment in query.split("&"):
        if not segment:
            continue
        key = unquote_plus(segment.split("=", 1)[0])
        if key in trackers:
            removed += 1
        else:
            kept.append(segment)
    if removed == 0:
        return query, 0
    return "&".join(kept), removed


def split_url(url: str):
    """Parse an http(s) URL, raising InvalidURL for anything else."""
    try:
        parsed = urlsplit(url)
    except ValueError as e:
        raise InvalidURL(f"Invalid URL {url!r}: {e}") from e
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        raise InvalidURL(f"Invalid URL {url!r}")
    return parsed


def clean_url(url: str, trackers: Collection[str], include_fragment: bool = True) -> CleanResult:
    """
    Clean URL by removing only tracking parameters.

    Args:
        url: URL to clean
        trackers: Tracking parameter names (exact, case-sensitive)
        include_fragment: Also clean key=value pairs after '#'

    Returns:
        CleanResult; result.url equals url when nothing was removed

    Raises:
        InvalidURL: if url is not an http(s) URL
    """
    parsed = split_url(url)

    query, removed_query = strip_pairs(parsed.query, trackers)

    # Some SPAs put parameters like _rdc after the hash
    fragment, removed_fragment = parsed.fragment, 0
    if include_fragment and "=" in parsed.fragment:
        fragment, removed_fragment = strip_pairs(parsed.fragment, trackers)

    if removed_query == 0 and removed_fragment == 0:
        return CleanResult(url=url)

    cleaned = urlunsplit((parsed.scheme, parsed.netloc, parsed.path, query, fragment))
    return CleanResult(url=cleaned, removed_query=removed_query, removed_fragment=removed_fragment)


def purify(text: str, trackers: Collection[str]) -> Optional[str]:
    """
    Manually purify a pasted URL (query string only).

    Args:
        text: User input; "https://" is prepended when it does not start with "http"
        trackers: Tracking parameter names

    Returns:
        Cleaned URL, or None for empty input

    Raises:
        InvalidURL: if the input cannot be parsed
    """
    text = (text or "").strip()
    if not text:
        return None
    if not text.startswith("http"):
        text = "https://" + text
    return clean_url(text, trackers, include_fragment=False).url
