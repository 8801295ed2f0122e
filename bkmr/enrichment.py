"""Best-effort title/description fetching for newly added bookmarks.

Enrichment never blocks or fails an insertion: the bookmark is stored first
and searchable by URL and tags right away. A background task then fetches the
page and fills in title and description if they are still empty. Any failure
leaves the bookmark as it was.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import trafilatura

from bkmr.config import get_config
from bkmr.models import Bookmark, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageMetadata:
    title: str = ""
    description: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.title or self.description)


def is_fetchable(url: str) -> bool:
    """True for http(s) URLs; shell commands and local paths are never fetched."""
    return url.startswith(("http://", "https://"))


def extract_metadata(html: str, url: Optional[str] = None) -> PageMetadata:
    """Extract title and description from an HTML document.

    Args:
        html: Page source
        url: Page URL, helps trafilatura resolve metadata

    Returns:
        PageMetadata, empty fields where nothing was found
    """
    document = trafilatura.extract_metadata(html, default_url=url)
    if document is None:
        return PageMetadata()

    max_len = get_config().enrichment.max_description_length
    description = (document.description or "").strip()
    if len(description) > max_len:
        description = description[:max_len].rstrip() + "..."

    return PageMetadata(
        title=(document.title or "").strip(),
        description=description,
    )


async def fetch_page_metadata(url: str, timeout: Optional[float] = None) -> PageMetadata:
    """Fetch a page and extract its title and description.

    Args:
        url: URL to fetch
        timeout: Request timeout in seconds (defaults to config)

    Returns:
        PageMetadata, empty if the fetch failed or timed out
    """
    config = get_config().enrichment
    if timeout is None:
        timeout = config.request_timeout

    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": config.user_agent},
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return extract_metadata(response.text, url)

    except httpx.HTTPError as e:
        logger.warning(f"HTTP error fetching {url}: {e}")
        return PageMetadata()
    except Exception as e:
        logger.warning(f"Error fetching {url}: {e}")
        return PageMetadata()


async def enrich_bookmark(store, bookmark_id: int) -> Optional[Bookmark]:
    """Fill in an empty title/description of a stored bookmark.

    Fields the user set explicitly, or that changed while the page was being
    fetched, are left alone.

    Args:
        store: Initialized BookmarkStore
        bookmark_id: Bookmark to enrich

    Returns:
        The bookmark after enrichment, unchanged if there was nothing to
        fill in, or None if no metadata could be fetched
    """
    try:
        bookmark = await store.get(bookmark_id)
        if not is_fetchable(bookmark.url):
            return None
        if bookmark.title and bookmark.description:
            return bookmark

        metadata = await fetch_page_metadata(bookmark.url)
        if metadata.is_empty:
            logger.info(f"No metadata found for {bookmark.url}")
            return None

        # Re-read: the bookmark may have been edited meanwhile
        current = await store.get(bookmark_id)
        changes = {}
        if not current.title and metadata.title:
            changes["title"] = metadata.title
        if not current.description and metadata.description:
            changes["description"] = metadata.description
        if not changes:
            return current

        logger.debug(f"Enriching bookmark {bookmark_id} with {sorted(changes)}")
        return await store.update(bookmark_id, **changes)

    except StoreError as e:
        logger.warning(f"Could not enrich bookmark {bookmark_id}: {e}")
        return None


def schedule_enrichment(store, bookmark: Bookmark) -> Optional[asyncio.Task]:
    """Start enrichment of a new bookmark in the background.

    Returns:
        The background task, or None if enrichment is disabled or not needed
    """
    if not get_config().enrichment.enabled or not is_fetchable(bookmark.url):
        return None
    if bookmark.title and bookmark.description:
        return None

    task = asyncio.get_running_loop().create_task(enrich_bookmark(store, bookmark.id))
    task.add_done_callback(_log_failure)
    return task


def _log_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Enrichment task failed", exc_info=task.exception())
