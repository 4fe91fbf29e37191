"""Error types raised across URLSweep."""


class URLSweepError(Exception):
    """Base class for URLSweep errors."""


class FetchFailure(URLSweepError):
    """Upstream feed could not be fetched (transport error or non-success status)."""


class ParseFailure(FetchFailure):
    """Upstream feed was fetched but is not valid JSON of the expected shape."""


class InvalidURL(URLSweepError, ValueError):
    """An address could not be parsed as an http(s) URL."""


class MessagingUnavailable(URLSweepError):
    """The background context is not reachable yet."""


class RuleIdOverflow(URLSweepError, ValueError):
    """A rule index does not fit in the id range reserved for its kind."""
