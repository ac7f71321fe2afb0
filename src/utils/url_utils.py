from typing import Optional
from urllib.parse import urlparse, parse_qs


class URLUtils:
    """Utility class for telling URLs apart from search keywords."""

    SCHEMES = ('http', 'https')

    @classmethod
    def is_url(cls, value: Optional[str]) -> bool:
        """
        Check whether a query is a well-formed absolute http(s) URL.

        Args:
            value: User query

        Returns:
            bool: True for URLs, False for keywords
        """
        if not value or any(ch.isspace() for ch in value.strip()):
            return False
        try:
            parsed = urlparse(value.strip())
        except ValueError:
            return False
        return parsed.scheme.lower() in cls.SCHEMES and bool(parsed.netloc)

    @classmethod
    def is_playlist(cls, url: str) -> bool:
        """
        Check if a URL carries a playlist id.

        Args:
            url: The URL to check

        Returns:
            bool: True if the URL has a `list` query parameter
        """
        if not cls.is_url(url):
            return False
        query = parse_qs(urlparse(url).query)
        return 'list' in query


is_url = URLUtils.is_url
