"""
Verb execution.

Resolving "tab + verb [+ subverb]" walks one path through:

    NotFound | ContainerList
    Deterministic  -> navigate straight to the verb's target
    PlanCacheKey   -> cached plan, or fetch + ask the planner (then cache)
    Unsupported    -> plan method other than navigate

A successful navigation replaces the tab's URL and clears all of its
verb and plan caches in a single update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, List, Union
from urllib.parse import urljoin, urlparse

from .browser import Page
from .errors import (
    NotFoundError,
    PlanningError,
    UnsupportedMethodError,
    WebCliError,
)
from .state import TabStore, validate_tab_name
from .types import ExecutionPlan, Tab, Verb, utc_now

logger = logging.getLogger(__name__)


@dataclass
class Deterministic:
    """Verb target is known; no planner needed."""
    plan: ExecutionPlan


@dataclass
class PlanCacheKey:
    """Verb needs a plan, cached under key."""
    key: str


@dataclass
class Unsupported:
    """Plan can't be executed by a text browser."""
    plan: ExecutionPlan


@dataclass
class ContainerListing:
    """A container was invoked without a subverb: show its children."""
    tab_name: str
    container: Verb

    @property
    def subverbs(self) -> List[Verb]:
        return list(self.container.subverbs or [])


@dataclass
class Navigation:
    """A verb was executed by navigating the tab."""
    tab_name: str
    verb_id: str
    verb: Verb
    plan: ExecutionPlan
    from_url: str
    to_url: str
    page: Page
    deterministic: bool
    plan_from_cache: bool = False


Resolution = Union[ContainerListing, Navigation]


def plan_cache_key(verb_id: str, current_url: str) -> str:
    return f"{verb_id}@{current_url}"


def classify_verb(verb: Verb, verb_id: str, current_url: str) -> Union[Deterministic, PlanCacheKey]:
    """Decide whether a verb can run without the planner."""
    if verb.is_deterministic:
        return Deterministic(ExecutionPlan(
            method="navigate",
            target_url=verb.target,
            description=f"Navigate to {verb.target}",
        ))
    return PlanCacheKey(plan_cache_key(verb_id, current_url))


def classify_plan(plan: ExecutionPlan) -> Union[Deterministic, Unsupported]:
    """Only navigate plans with a target URL can be executed."""
    if plan.method == "navigate" and plan.target_url:
        return Deterministic(plan)
    return Unsupported(plan)


def resolve_target(target_url: str, current_url: str) -> str:
    """
    Make a plan target absolute.

    Relative targets are anchored to the origin (scheme + host) of the
    current URL, not its path.
    """
    if target_url.startswith("http://") or target_url.startswith("https://"):
        return target_url
    current = urlparse(current_url)
    if not current.scheme or not current.netloc:
        raise WebCliError(
            f'Cannot resolve relative URL "{target_url}" against "{current_url}"'
        )
    origin = f"{current.scheme}://{current.netloc}"
    try:
        return urljoin(origin + "/", target_url)
    except ValueError as e:
        raise WebCliError(f'Cannot resolve relative URL "{target_url}": {e}') from e


class ExecutionResolver:
    """Turn a verb invocation into a navigation, or a reported failure."""

    def __init__(self, store: TabStore, fetcher, planner, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.fetcher = fetcher
        self.planner = planner
        self.clock = clock or utc_now

    async def resolve(self, tab_name: str, verb_name: str, child_name: Optional[str] = None) -> Resolution:
        """
        Execute a verb on a tab.

        Args:
            tab_name: Tab to act on
            verb_name: Top-level verb from the tab's verb cache
            child_name: Subverb of verb_name, for containers

        Returns:
            ContainerListing if a container was named without a child,
            otherwise the Navigation that was performed

        Raises:
            ValidationError: tab_name is malformed
            NotFoundError: tab, verb or subverb missing
            UnavailableError: a plan is needed but the planner isn't available
            PlanningError: the planner couldn't produce a plan
            UnsupportedMethodError: the plan isn't a navigation
            FetchError: the page couldn't be fetched
        """
        validate_tab_name(tab_name)
        tab = self.store.get(tab_name)
        if tab is None:
            raise NotFoundError(f'Tab "{tab_name}" does not exist')

        verb = (tab.verb_cache or {}).get(verb_name)
        if verb is None:
            raise NotFoundError(f'Verb "{verb_name}" not found in tab "{tab_name}"')

        verb_id = verb_name
        if verb.is_container:
            if child_name is None:
                return ContainerListing(tab_name=tab_name, container=verb)
            subverb = verb.find_subverb(child_name)
            if subverb is None:
                raise NotFoundError(
                    f'Subverb "{child_name}" not found in container "{verb_name}"'
                )
            verb = subverb
            verb_id = f"{verb_name}.{child_name}"
        elif child_name is not None:
            raise NotFoundError(
                f'Subverb "{child_name}" not found: "{verb_name}" is not a container'
            )

        plan_from_cache = False
        step = classify_verb(verb, verb_id, tab.current_url)
        if isinstance(step, Deterministic):
            logger.info(f"Deterministic execution of {verb_id}: {step.plan.target_url}")
            plan = step.plan
        else:
            plan, plan_from_cache = await self._lookup_plan(tab_name, tab, verb, verb_id, step.key)

        dispatch = classify_plan(plan)
        if isinstance(dispatch, Unsupported):
            raise UnsupportedMethodError(
                f'Execution method "{plan.method}" for verb "{verb_id}" is not implemented; '
                f"only navigation is supported"
            )

        return await self._navigate(
            tab_name, tab, verb, verb_id, dispatch.plan,
            deterministic=isinstance(step, Deterministic),
            plan_from_cache=plan_from_cache,
        )

    async def _lookup_plan(self, tab_name: str, tab: Tab, verb: Verb, verb_id: str, key: str):
        cached = (tab.execution_plan_cache or {}).get(key)
        if cached is not None:
            logger.info(f"Using cached execution plan for {verb_id}")
            return cached, True

        page = await self.fetcher.fetch(tab.current_url)
        plan = self.planner.plan(verb, page.html, tab.current_url)
        if plan is None:
            raise PlanningError(f'Cannot determine how to execute verb "{verb_id}"')

        plan_cache = dict(tab.execution_plan_cache or {})
        plan_cache[key] = plan
        self.store.update(tab_name, {"execution_plan_cache": plan_cache})
        logger.info(f"Cached execution plan for {verb_id}: {plan.method}")
        return plan, False

    async def _navigate(
        self,
        tab_name: str,
        tab: Tab,
        verb: Verb,
        verb_id: str,
        plan: ExecutionPlan,
        deterministic: bool,
        plan_from_cache: bool,
    ) -> Navigation:
        target = resolve_target(plan.target_url, tab.current_url)
        logger.info(f"Navigating {tab_name}: {tab.current_url} -> {target}")

        page = await self.fetcher.fetch(target)

        # New page: every cached verb and plan is stale
        self.store.update(tab_name, {
            "current_url": target,
            "last_updated": self.clock().isoformat(),
            "verb_cache": None,
            "verb_cache_expires": None,
            "execution_plan_cache": None,
        })

        return Navigation(
            tab_name=tab_name,
            verb_id=verb_id,
            verb=verb,
            plan=plan,
            from_url=tab.current_url,
            to_url=target,
            page=page,
            deterministic=deterministic,
            plan_from_cache=plan_from_cache,
        )
