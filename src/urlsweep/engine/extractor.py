"""Extract literal parameter names from the upstream rule feed.

Upstream patterns are regular expressions such as
``(?:&|[/?#&])(?:tracking=)([^&]*)`` or plain names like ``fbclid``. They are
never compiled or evaluated here: every maximal run of parameter-name
characters is taken as a candidate token.
"""

import re
from typing import Any, Dict, Iterable, Iterator, Mapping, Set

from ..config import MIN_TOKEN_LENGTH, TOKEN_STOPLIST
from ..errors import ParseFailure
from ..logging import get_logger

logger = get_logger(__name__)

TOKEN_RE = re.compile(r"[A-Za-z0-9_.\-]+")

PATTERN_CATEGORIES = ("rules", "referralMarketing")


def parse_feed(payload: Any) -> Dict[str, Dict[str, Any]]:
    """
    Validate the feed shape and return its providers mapping.

    Raises:
        ParseFailure: if payload is not {"providers": {name: {...}}}
    """
    if not isinstance(payload, dict):
        raise ParseFailure(f"Feed must be a JSON object, got {type(payload).__name__}")
    providers = payload.get("providers")
    if not isinstance(providers, dict):
        raise ParseFailure("Feed has no 'providers' object")
    for name, provider in providers.items():
        if not isinstance(provider, dict):
            raise ParseFailure(f"Provider {name!r} is not an object")
        for category in PATTERN_CATEGORIES:
            patterns = provider.get(category)
            if patterns is not None and not isinstance(patterns, list):
                raise ParseFailure(f"Provider {name!r} field {category!r} is not a list")
    return providers


def iter_patterns(providers: Mapping[str, Mapping[str, Any]]) -> Iterator[str]:
    """Yield every pattern string of both categories of every provider."""
    for provider in providers.values():
        for category in PATTERN_CATEGORIES:
            for pattern in provider.get(category) or []:
                if isinstance(pattern, str):
                    yield pattern


def tokens_from_pattern(pattern: str) -> Iterable[str]:
    """Candidate parameter names found in one pattern."""
    for token in TOKEN_RE.findall(pattern):
        if len(token) >= MIN_TOKEN_LENGTH and token not in TOKEN_STOPLIST:
            yield token


def extract_parameters(providers: Mapping[str, Mapping[str, Any]]) -> Set[str]:
    """
    Extract the set of tracking parameter names from a providers mapping.

    Args:
        providers: {provider_name: {"rules": [...], "referralMarketing": [...]}}

    Returns:
        Union of kept tokens across all providers and categories
    """
    params: Set[str] = set()
    for pattern in iter_patterns(providers):
        params.update(tokens_from_pattern(pattern))
    logger.debug(f"Extracted {len(params)} parameters from {len(providers)} providers")
    return params
