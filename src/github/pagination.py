"""Link header parsing and page wrappers for GitHub list endpoints."""

import re
from typing import Any
from urllib.parse import parse_qs, urlparse

MAX_PER_PAGE = 100


class LinkHeader:
    """Parser for GitHub Link headers."""

    def __init__(self, link_header: str | None = None):
        """Initialize Link header parser.

        Args:
            link_header: Raw Link header value from response
        """
        self.links: dict[str, str] = {}
        if link_header:
            self._parse(link_header)

    def _parse(self, link_header: str) -> None:
        # Link header format: <url>; rel="next", <url>; rel="last"
        link_pattern = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')

        for match in link_pattern.finditer(link_header):
            url, rel = match.groups()
            self.links[rel] = url

    @property
    def next_url(self) -> str | None:
        """Get URL for next page."""
        return self.links.get("next")

    @property
    def has_next(self) -> bool:
        """Check if there's a next page."""
        return "next" in self.links

    def get_last_page_number(self) -> int | None:
        """Extract last page number from last URL."""
        last_url = self.links.get("last")
        if not last_url:
            return None

        try:
            params = parse_qs(urlparse(last_url).query)
            page = params.get("page", [None])[0]
            return int(page) if page else None
        except (ValueError, TypeError):
            return None


class PaginatedResponse:
    """One page of a list endpoint plus its Link header."""

    def __init__(self, data: Any, headers: dict[str, str], url: str):
        """Initialize paginated response.

        Args:
            data: Decoded JSON body (normally a list)
            headers: Response headers
            url: Request URL
        """
        self.data = data
        self.headers = headers
        self.url = url
        self.link_header = LinkHeader(headers.get("Link") or headers.get("link"))

    @property
    def has_next_page(self) -> bool:
        """Check if there's a next page."""
        return self.link_header.has_next

    @property
    def next_page_url(self) -> str | None:
        """Get URL for next page."""
        return self.link_header.next_url

    @property
    def total_pages(self) -> int | None:
        """Get total number of pages."""
        return self.link_header.get_last_page_number()

    @property
    def items(self) -> list[Any]:
        """Items of the current page; non-list bodies yield nothing."""
        return self.data if isinstance(self.data, list) else []
