"""
Source Collector

Assembles the input of a batch (URLs and extracted documents) and loads
the text of each source for the AI capabilities.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from bulk_import.config import get_settings
from bulk_import.errors import EmptyWorkSetError
from bulk_import.models.sources import (
    DocumentSource,
    SourceContent,
    SourceRef,
    WorkSet,
)
from bulk_import.utils.helpers import dedupe, parse_url_input, truncate

logger = logging.getLogger(__name__)

FETCH_FAILED_TEXT = "[Could not fetch content]"
USER_AGENT = "KnowledgeBulkImport/1.0"


class SourceCollector:
    """
    Collects URLs and uploaded documents for one batch.
    """

    def __init__(self):
        self.urls: List[str] = []
        self.documents: List[DocumentSource] = []

    def add_urls(self, url_input: str) -> List[str]:
        """
        Parse free-text URL input and add the valid URLs.

        Returns:
            The URLs that were newly added
        """
        parsed = parse_url_input(url_input)
        added = [u for u in parsed if u not in self.urls]
        self.urls.extend(added)
        logger.info(f"Added {len(added)} URLs ({len(self.urls)} total)")
        return added

    def add_document(self, document: DocumentSource) -> None:
        if any(d.id == document.id for d in self.documents):
            logger.debug(f"Document {document.id} already collected")
            return
        self.documents.append(document)

    def remove_document(self, document_id: str) -> None:
        self.documents = [d for d in self.documents if d.id != document_id]

    def clear_documents(self) -> None:
        self.documents = []

    def build_work_set(self) -> WorkSet:
        """
        Freeze the collected sources into a work set.

        Raises:
            EmptyWorkSetError: If no valid URL or document was collected
        """
        work_set = WorkSet(urls=dedupe(self.urls), documents=list(self.documents))
        if work_set.is_empty:
            raise EmptyWorkSetError("Provide at least one valid URL or document")
        return work_set


class SourceTextLoader:
    """
    Loads plain text for URL and document sources.

    URL text is fetched over HTTP once per batch and cached; failures are
    replaced by a placeholder so one unreachable page never blocks a batch.
    """

    def __init__(
        self,
        fetch_timeout: Optional[int] = None,
        max_chars: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        config = get_settings()
        self.fetch_timeout = fetch_timeout or config.url_fetch_timeout
        self.max_chars = max_chars or config.max_source_chars
        self.session = session or requests.Session()
        self._cache: Dict[str, str] = {}

    def seed(self, url: str, text: str) -> None:
        """Pre-populate the cache, e.g. with text the host already has."""
        self._cache[url] = text

    def _fetch(self, url: str) -> str:
        response = self.session.get(
            url, timeout=self.fetch_timeout, headers={"User-Agent": USER_AGENT}
        )
        response.raise_for_status()

        content_type = response.headers.get("content-type", "")
        if "html" in content_type:
            soup = BeautifulSoup(response.text, "html.parser")
            for tag in soup(["script", "style", "nav", "footer", "header"]):
                tag.decompose()
            text = soup.get_text(separator="\n")
        elif "text" in content_type or "json" in content_type:
            text = response.text
        else:
            raise ValueError(f"Unsupported content type: {content_type or 'unknown'}")

        lines = (line.strip() for line in text.splitlines())
        return "\n".join(line for line in lines if line)

    async def load_url(self, url: str) -> str:
        if url in self._cache:
            return self._cache[url]

        try:
            text = await asyncio.to_thread(self._fetch, url)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            text = FETCH_FAILED_TEXT

        self._cache[url] = text
        return text

    async def load(
        self,
        urls: List[str],
        documents: List[DocumentSource],
        max_chars: Optional[int] = None,
    ) -> List[SourceContent]:
        """
        Load the text of the given sources, URLs first, in order.

        Args:
            urls: URL sources
            documents: Document sources (text already extracted)
            max_chars: Per-source limit, defaults to the configured limit

        Returns:
            One SourceContent per source
        """
        limit = max_chars or self.max_chars
        texts = await asyncio.gather(*(self.load_url(u) for u in urls))

        contents = [
            SourceContent(ref=SourceRef.url(url), label=url, text=truncate(text, limit))
            for url, text in zip(urls, texts)
        ]
        contents.extend(
            SourceContent(
                ref=SourceRef.document(doc.id),
                label=doc.filename,
                text=truncate(doc.content, limit),
            )
            for doc in documents
        )
        return contents

    def clear_cache(self) -> None:
        self._cache.clear()

    async def load_work_set(
        self, work_set: WorkSet, max_chars: Optional[int] = None
    ) -> List[SourceContent]:
        return await self.load(work_set.urls, work_set.documents, max_chars)
