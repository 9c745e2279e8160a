"""
Logging filters for outgoing HTTP client logs.

Graph API and Conversions API calls carry the access token in the query string,
so URLs logged by httpx/urllib3 are masked and truncated before emission.
"""
import logging
import re

_URL_PATTERN = re.compile(r'(https?://[^\s\)\'"]+)')
_TOKEN_PATTERN = re.compile(r'(access_token=)[^&\s]+')


def mask_access_token(text: str) -> str:
    """Replace the value of any access_token query parameter with '***'."""
    return _TOKEN_PATTERN.sub(r'\1***', text)


class URLLoggingFilter(logging.Filter):
    """
    Masks access tokens and truncates long URLs in log messages.

    URLs above max_url_length keep their base path and lose the tail of the
    query string.
    """

    def __init__(self, max_url_length: int = 300, name: str = ""):
        super().__init__(name)
        self.max_url_length = max_url_length

    def _clean_url(self, match: re.Match) -> str:
        url = mask_access_token(match.group(1))
        if len(url) <= self.max_url_length:
            return url
        base, _, query = url.partition("?")
        if not query or len(base) > self.max_url_length - 50:
            return url[:self.max_url_length - 20] + "...[truncated]"
        max_query_length = self.max_url_length - len(base) - 30
        return f"{base}?{query[:max_query_length]}...[truncated]"

    def _clean(self, value: str) -> str:
        return _URL_PATTERN.sub(self._clean_url, mask_access_token(value))

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._clean(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._clean(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True


def setup_http_logging_filter(max_url_length: int = 300) -> None:
    """
    Installs URLLoggingFilter on the HTTP client loggers (httpx, httpcore, urllib3).

    Args:
        max_url_length: Maximum URL length shown in logs (default: 300)
    """
    url_filter = URLLoggingFilter(max_url_length=max_url_length)
    for name in ("httpx", "httpcore", "urllib3.connectionpool"):
        http_logger = logging.getLogger(name)
        # Drop filters of the same type to avoid duplicates on reload
        http_logger.filters = [f for f in http_logger.filters if not isinstance(f, URLLoggingFilter)]
        http_logger.addFilter(url_filter)
