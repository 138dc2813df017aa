"""
Verb discovery with a per-tab cache.

Discovery reuses a tab's cached verbs while they are fresh, and otherwise
fetches the page and re-extracts:
- Structural extraction (parser.extract_verbs) by default
- LLM extraction when the caller asks for it or supplies guidance

Verbs are cached for VERB_CACHE_TTL, keyed by name.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, List

from .browser import Page
from .errors import NotFoundError, UnavailableError
from .llm import STATUS_UNAVAILABLE, Extraction
from .parser import extract_verbs
from .state import TabStore, validate_tab_name
from .types import Tab, Verb, parse_timestamp, utc_now, verbs_to_cache

logger = logging.getLogger(__name__)

VERB_CACHE_TTL = timedelta(minutes=5)

SOURCE_CACHE = "cache"
SOURCE_STRUCTURAL = "structural"
SOURCE_PLANNER = "planner"


@dataclass
class Discovery:
    """Verbs available on a tab's current page and where they came from."""
    tab: Tab
    verbs: List[Verb]
    source: str
    page: Optional[Page] = None
    planner_status: Optional[str] = None
    planner_error: Optional[str] = None

    @property
    def from_cache(self) -> bool:
        return self.source == SOURCE_CACHE


def cache_is_fresh(tab: Tab, now: datetime) -> bool:
    """True if the tab has cached verbs that have not expired."""
    if tab.verb_cache is None or not tab.verb_cache_expires:
        return False
    expires = parse_timestamp(tab.verb_cache_expires)
    return expires is not None and now < expires


class VerbCachePolicy:
    """Decide between cached verbs and a fresh fetch + extraction."""

    def __init__(self, store: TabStore, fetcher, planner, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.fetcher = fetcher
        self.planner = planner
        self.clock = clock or utc_now

    def _load(self, tab_name: str) -> Tab:
        validate_tab_name(tab_name)
        tab = self.store.get(tab_name)
        if tab is None:
            raise NotFoundError(f'Tab "{tab_name}" does not exist')
        return tab

    def _cache_fields(self, verb_cache) -> dict:
        return {
            "verb_cache": verb_cache,
            "verb_cache_expires": (self.clock() + VERB_CACHE_TTL).isoformat(),
        }

    async def discover(
        self,
        tab_name: str,
        bypass_cache: bool = False,
        use_planner: bool = False,
        guidance: Optional[str] = None,
    ) -> Discovery:
        """
        List the verbs on a tab's current page.

        Args:
            tab_name: Tab to inspect
            bypass_cache: Always fetch and re-extract
            use_planner: Extract with the LLM instead of the HTML parser.
                Falls back to the parser if the planner is unavailable.
            guidance: Free-text instructions for LLM extraction; implies use_planner

        Returns:
            Discovery with the verbs now cached on the tab
        """
        tab = self._load(tab_name)
        wants_planner = use_planner or bool(guidance)

        if not bypass_cache and not wants_planner and cache_is_fresh(tab, self.clock()):
            logger.info(f"Using {len(tab.verb_cache)} cached verbs for {tab_name}")
            return Discovery(tab=tab, verbs=list(tab.verb_cache.values()), source=SOURCE_CACHE)

        page = await self.fetcher.fetch(tab.current_url)

        extraction: Optional[Extraction] = None
        if wants_planner:
            extraction = self.planner.extract(page.text, page.url, guidance, page.html)
            logger.info(f"Planner extraction for {tab_name}: {extraction.status}")

        if extraction is not None and (guidance or extraction.status != STATUS_UNAVAILABLE):
            verbs = extraction.verbs
            source = SOURCE_PLANNER
        else:
            verbs = extract_verbs(page.html, page.text, page.url).verbs
            source = SOURCE_STRUCTURAL

        tab = self.store.update(tab_name, self._cache_fields(verbs_to_cache(verbs)))
        return Discovery(
            tab=tab,
            verbs=verbs,
            source=source,
            page=page,
            planner_status=extraction.status if extraction else None,
            planner_error=extraction.error if extraction else None,
        )

    async def refine(self, tab_name: str, guidance: str) -> Discovery:
        """
        Re-extract every verb on the tab with guidance.

        An empty result leaves the existing cache untouched.

        Raises:
            UnavailableError: if the planner can't be used
        """
        tab = self._load(tab_name)
        self._require_planner(tab_name)

        page = await self.fetcher.fetch(tab.current_url)
        extraction = self.planner.extract(page.text, page.url, guidance, page.html)

        if extraction.verbs:
            tab = self.store.update(tab_name, self._cache_fields(verbs_to_cache(extraction.verbs)))
        else:
            logger.info(f"Refine for {tab_name} found no verbs ({extraction.status})")

        return Discovery(
            tab=tab,
            verbs=extraction.verbs,
            source=SOURCE_PLANNER,
            page=page,
            planner_status=extraction.status,
            planner_error=extraction.error,
        )

    async def refine_container(self, tab_name: str, container_name: str, guidance: str) -> Discovery:
        """
        Re-extract only one container's subverbs.

        Sibling verbs stay as they are; the cache expiry is refreshed.

        Raises:
            NotFoundError: if the container isn't in the tab's verb cache
            UnavailableError: if the planner can't be used
        """
        tab = self._load(tab_name)
        container = (tab.verb_cache or {}).get(container_name)
        if container is None:
            raise NotFoundError(
                f'Container verb "{container_name}" not found in tab "{tab_name}"'
            )
        self._require_planner(tab_name)

        page = await self.fetcher.fetch(tab.current_url)
        scoped_guidance = (
            f'Extract items for the "{container.description}" category.\n\n{guidance}'
        )
        extraction = self.planner.extract(page.text, page.url, scoped_guidance, page.html)

        container.subverbs = extraction.verbs
        verb_cache = dict(tab.verb_cache)
        verb_cache[container_name] = container
        tab = self.store.update(tab_name, self._cache_fields(verb_cache))

        return Discovery(
            tab=tab,
            verbs=extraction.verbs,
            source=SOURCE_PLANNER,
            page=page,
            planner_status=extraction.status,
            planner_error=extraction.error,
        )

    def _require_planner(self, tab_name: str) -> None:
        if not self.planner.is_available():
            raise UnavailableError(
                f'Cannot refine tab "{tab_name}": planner is not available '
                f"(start Ollama or check OLLAMA_HOST)"
            )
