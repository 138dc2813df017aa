"""Shared fixtures and fakes for web-cli tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from webcli.browser import Page
from webcli.errors import FetchError, UnavailableError
from webcli.llm import STATUS_OK, STATUS_UNAVAILABLE, Extraction
from webcli.state import TabStore
from webcli.types import ExecutionPlan, Tab, Verb


NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeFetcher:
    """Serves canned pages and records every fetched URL."""

    def __init__(self, pages: Optional[Dict[str, Page]] = None, installed: bool = True):
        self.pages = pages or {}
        self.installed = installed
        self.calls: List[str] = []

    def add(self, url: str, html: str = "", text: str = "") -> None:
        self.pages[url] = Page(text=text or f"Text of {url}", html=html, url=url)

    async def fetch(self, url: str) -> Page:
        self.calls.append(url)
        if url not in self.pages:
            raise FetchError(f"links -dump failed for {url} (exit 1)")
        return self.pages[url]

    def check_installed(self) -> bool:
        return self.installed


class FakePlanner:
    """Planner double with canned extraction and plan results."""

    def __init__(
        self,
        available: bool = True,
        verbs: Optional[List[Verb]] = None,
        plan_result: Optional[ExecutionPlan] = None,
        extraction: Optional[Extraction] = None,
    ):
        self.available = available
        self.verbs = verbs or []
        self.plan_result = plan_result
        self.extraction = extraction
        self.extract_calls: List[dict] = []
        self.plan_calls: List[dict] = []

    def is_available(self) -> bool:
        return self.available

    def extract(self, text, url, guidance=None, html=None) -> Extraction:
        self.extract_calls.append({"text": text, "url": url, "guidance": guidance, "html": html})
        if self.extraction is not None:
            return self.extraction
        if not self.available:
            return Extraction(status=STATUS_UNAVAILABLE)
        return Extraction(status=STATUS_OK, verbs=list(self.verbs))

    def plan(self, verb, html, current_url) -> Optional[ExecutionPlan]:
        self.plan_calls.append({"verb": verb, "html": html, "url": current_url})
        if not self.available:
            raise UnavailableError(f'Cannot plan verb "{verb.name}": planner is not available')
        return self.plan_result


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_tab(**overrides) -> Tab:
    data = {
        "current_url": "https://example.com",
        "last_updated": NOW.isoformat(),
    }
    data.update(overrides)
    return Tab(**data)


def make_verb(name: str = "test-verb", **overrides) -> Verb:
    data = {
        "name": name,
        "description": "Test verb description",
        "type": "navigate",
    }
    data.update(overrides)
    return Verb(**data)


def make_container(name: str, subverbs: List[Verb]) -> Verb:
    return Verb(
        name=name,
        description=f"Container with {len(subverbs)} items",
        type="navigate",
        subverbs=subverbs,
    )


@pytest.fixture
def store(tmp_path: Path) -> TabStore:
    tab_store = TabStore(tmp_path / ".web-cli")
    tab_store.init()
    return tab_store


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def planner() -> FakePlanner:
    return FakePlanner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
