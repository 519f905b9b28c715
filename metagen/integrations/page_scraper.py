"""Page scraper for the current title, description and body text of a candidate."""

import logging
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

CONTENT_MAX_CHARS = 3000


@dataclass(slots=True)
class PageContent:
    """What the page currently shows to searchers and readers."""

    title: str | None
    description: str | None
    content: str


class PageScraper:
    """Fetch candidate pages and reduce them to the text the writer needs."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_chars: int = CONTENT_MAX_CHARS,
        user_agent: str | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_chars = max_chars
        self.user_agent = user_agent or "Mozilla/5.0 (compatible; MetaGen/0.1)"
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "PageScraper":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Scraper must be used as async context manager")
        return self._client

    async def fetch(self, url: str) -> PageContent:
        """Fetch one page; HTTP errors propagate to the caller."""
        logger.info("Scraping page", extra={"url": url})
        response = await self.client.get(url)
        response.raise_for_status()
        return extract_page_content(response.text, max_chars=self.max_chars)


def extract_page_content(html: str, max_chars: int = CONTENT_MAX_CHARS) -> PageContent:
    soup = BeautifulSoup(html, "lxml")

    title = soup.title.get_text(strip=True) if soup.title else ""
    description = ""
    meta_tag = soup.find("meta", attrs={"name": "description"})
    if meta_tag and meta_tag.get("content"):
        description = str(meta_tag["content"]).strip()

    # Chrome and hidden blocks
    for element in soup(["script", "style", "svg", "nav", "header", "footer", "aside", "noscript", "iframe"]):
        element.decompose()
    for element in soup.select('[role="navigation"], [aria-hidden="true"]'):
        element.decompose()

    main_content = soup.find("main") or soup.find(attrs={"role": "main"}) or soup.find("article") or soup.body
    text_content = ""
    if main_content:
        text_content = main_content.get_text(separator="\n", strip=True)

    return PageContent(
        title=title or None,
        description=description or None,
        content=text_content[:max_chars],
    )
