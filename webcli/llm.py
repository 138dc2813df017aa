"""Ollama-backed planner: LLM verb extraction and execution planning."""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Any

import ollama

from .errors import PlanningError, UnavailableError
from .parser import dedupe_verbs, extract_links, html_to_markdown, sanitize_verb_name
from .types import (
    ExecutionPlan,
    MAX_VERB_DEPTH,
    PLAN_METHODS,
    VERB_TYPES,
    Verb,
)

logger = logging.getLogger(__name__)

PAGE_TEXT_LIMIT = 4000
PLAN_CONTENT_LIMIT = 20000
PLAN_WINDOW_BEFORE = 5000
PLAN_WINDOW_AFTER = 15000

# Extraction outcome statuses
STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_FAILED = "failed"
STATUS_UNAVAILABLE = "unavailable"


@dataclass
class Extraction:
    """
    Result of an LLM verb extraction.

    status tells apart a planner that isn't configured (unavailable), one
    whose call failed (failed), and one that answered with nothing (empty).
    """
    status: str
    verbs: List[Verb] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


EXTRACT_SYSTEM_PROMPT = """You turn web pages into a catalog of actions for a command-line browser.

Respond with ONLY a JSON object (no other text):
{
  "verbs": [
    {
      "name": "kebab-case-name",
      "description": "what the action does, mention parameters",
      "type": "navigate|form|action",
      "params": ["optional", "parameter", "names"],
      "target": "full URL for navigate, selector or identifier otherwise",
      "subverbs": [ ...same shape, only for grouping many similar items... ]
    }
  ]
}

Rules:
- Names are short, lowercase, letters, digits and hyphens only
- For navigation, pick the matching link from "Available links" and use its full URL as target
- When a page lists 10+ similar items (products, results, articles), group them under one parent verb using subverbs
- At most 10 top-level verbs; containers may hold more subverbs
"""

DEFAULT_GUIDANCE = """Focus on the few actions that matter most on this page:
1. Primary content actions (open an item, read an article, play a video)
2. Transactions (add to cart, checkout)
3. Core navigation (next page, previous page, view details)

Skip site-wide boilerplate: home/about/contact, account and login links
(unless logging in is the point of the page), footers and social links.
For search results focus on the results themselves, pagination and filters."""

PLAN_SYSTEM_PROMPT = """You decide how a command-line text browser should carry out an action on a web page.

Respond with ONLY a JSON object (no other text):
{
  "method": "navigate|form|action",
  "target_url": "URL to open (navigate only)",
  "command": "optional shell command",
  "description": "what will happen"
}

Only "navigate" can be executed today. If the action is a navigation, give the target URL.
If you cannot tell how to execute the action, return {"method": "action", "description": "<why>"}.
"""


class OllamaPlanner:
    """Extract verbs and plan executions with a local Ollama model."""

    def __init__(
        self,
        model: str = "llama3.1:8b",
        host: Optional[str] = None,
        enabled: bool = True,
        client: Any = None,
    ):
        self.model = model
        self.enabled = enabled
        self.client = client if client is not None else ollama.Client(host=host)
        self._available: Optional[bool] = None

    def is_available(self) -> bool:
        """True if the planner is enabled and the Ollama server answers."""
        if not self.enabled:
            return False
        if self._available is None:
            try:
                self.client.list()
                self._available = True
            except Exception as e:
                logger.warning(f"Ollama not reachable, planner disabled: {e}")
                self._available = False
        return self._available

    def extract(
        self,
        text: str,
        url: str,
        guidance: Optional[str] = None,
        html: Optional[str] = None,
    ) -> Extraction:
        """
        Ask the LLM for the verbs on a page.

        Never raises: failures come back as an Extraction with a non-ok status.

        Args:
            text: Plain-text rendering of the page
            url: Page URL
            guidance: Free-text instructions narrowing what to extract
            html: Raw markup, used to list the page's links

        Returns:
            Extraction with status and verbs
        """
        if not self.is_available():
            return Extraction(status=STATUS_UNAVAILABLE)

        links = extract_links(html) if html else ""
        prompt = f"URL: {url}\n\nPage content:\n{text[:PAGE_TEXT_LIMIT]}\n"
        if links:
            prompt += f"\nAvailable links on page:\n{links}\n"
        if guidance:
            prompt += f"\nSPECIFIC GUIDANCE:\n{guidance}\n"
        else:
            prompt += f"\n{DEFAULT_GUIDANCE}\n"

        try:
            content = self._chat(EXTRACT_SYSTEM_PROMPT, prompt)
            data = parse_json_content(content)
            raw_verbs = data.get("verbs") if isinstance(data, dict) else data
            verbs = normalize_verbs(raw_verbs if isinstance(raw_verbs, list) else [])
        except Exception as e:
            logger.warning(f"LLM verb extraction failed for {url}: {e}")
            return Extraction(status=STATUS_FAILED, error=str(e))

        logger.info(f"LLM extracted {len(verbs)} verbs from {url}")

        if not verbs:
            return Extraction(status=STATUS_EMPTY)
        return Extraction(status=STATUS_OK, verbs=verbs)

    def plan(self, verb: Verb, html: str, current_url: str) -> Optional[ExecutionPlan]:
        """
        Ask the LLM how to execute a verb.

        Returns:
            The plan, or None if the model's answer is unusable

        Raises:
            UnavailableError: if the planner isn't configured or reachable
            PlanningError: if the model call itself fails
        """
        if not self.is_available():
            raise UnavailableError(
                f'Cannot plan verb "{verb.name}": planner is not available '
                f"(start Ollama or check OLLAMA_HOST)"
            )

        content = focus_content(html_to_markdown(html), verb)
        prompt = (
            f"Current URL: {current_url}\n\n"
            f"Verb to execute:\n"
            f"- Name: {verb.name}\n"
            f"- Description: {verb.description}\n"
            f"- Type: {verb.type}\n"
        )
        if verb.target:
            prompt += f"- Target: {verb.target}\n"
        prompt += f"\nPage links (markdown):\n{content}\n"

        try:
            answer = self._chat(PLAN_SYSTEM_PROMPT, prompt)
        except Exception as e:
            raise PlanningError(f'Planner call failed for verb "{verb.name}": {e}') from e

        try:
            data = parse_json_content(answer)
        except ValueError as e:
            logger.warning(f"Unparseable plan for {verb.name}: {e}")
            return None

        if not isinstance(data, dict) or data.get("method") not in PLAN_METHODS:
            logger.warning(f"Plan for {verb.name} has no valid method: {answer[:200]}")
            return None
        return ExecutionPlan.from_dict(data)

    def _chat(self, system: str, prompt: str) -> str:
        response = self.client.chat(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            options={
                "num_ctx": 16384,
                "temperature": 0.1,
            },
        )
        return response["message"]["content"]


def parse_json_content(content: str) -> Any:
    """Parse JSON from an LLM answer, unwrapping markdown code fences."""
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]
    return json.loads(content.strip())


def normalize_verbs(raw: List[Any], depth: int = 1) -> List[Verb]:
    """
    Turn untrusted LLM output into valid verbs.

    Names are sanitized, entries without a usable name or type are
    dropped, duplicates are removed and nesting stops at MAX_VERB_DEPTH.
    """
    verbs = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        verb = Verb.from_dict(item, max_depth=1)
        verb.name = sanitize_verb_name(verb.name)
        if not verb.name or verb.type not in VERB_TYPES:
            continue

        raw_subverbs = item.get("subverbs")
        if isinstance(raw_subverbs, list) and raw_subverbs and depth < MAX_VERB_DEPTH:
            verb.subverbs = normalize_verbs(raw_subverbs, depth + 1) or None
        else:
            verb.subverbs = None
        verbs.append(verb)
    return dedupe_verbs(verbs)


def focus_content(markdown: str, verb: Verb) -> str:
    """
    Trim long page content to the window most related to the verb.

    Pages under PLAN_CONTENT_LIMIT are returned whole. Otherwise the
    window around the search term with the most other terms nearby is
    kept, falling back to the start of the page.
    """
    if len(markdown) <= PLAN_CONTENT_LIMIT:
        return markdown

    lowered = markdown.lower()
    terms = [verb.name.lower()] + [
        w for w in verb.description.lower().split() if len(w) > 4
    ]

    best_index, best_score = 0, 0
    for term in terms:
        index = lowered.find(term)
        if index == -1:
            continue
        window = lowered[max(0, index - PLAN_WINDOW_BEFORE):index + PLAN_WINDOW_BEFORE]
        score = sum(1 for t in terms if t in window)
        if score > best_score:
            best_index, best_score = index, score

    if best_score == 0:
        return markdown[:PLAN_CONTENT_LIMIT]
    start = max(0, best_index - PLAN_WINDOW_BEFORE)
    return markdown[start:best_index + PLAN_WINDOW_AFTER]
