"""
Structural verb extraction from raw HTML.

Turns a page into a small catalog of verbs without any LLM:
1. Links   -> navigate verbs (target = resolved URL)
2. Forms   -> form verbs (params = named fields, target = resolved action)
3. Buttons -> action verbs (target = onclick handler or data-action)

Extraction never raises; malformed markup yields whatever is parseable.
"""

import re
from dataclasses import dataclass, field
from typing import List, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from .types import Verb


MAX_VERBS = 20
MAX_NAME_LENGTH = 50
MIN_LINK_TEXT = 3
MAX_LINK_TEXT = 100
MIN_BUTTON_TEXT = 2

# Field types that never become form params
_SKIPPED_FIELD_TYPES = ("submit", "button")
_BUTTON_CLASSES = ("button", "btn")


@dataclass
class ParsedPage:
    """Verbs extracted from a page, plus its plain-text rendering."""
    verbs: List[Verb] = field(default_factory=list)
    text: str = ""


def sanitize_verb_name(text: str) -> str:
    """
    Convert link or button text into a verb name.

    "About Us & Contact!" -> "about-us-contact"
    """
    name = text.lower()
    name = re.sub(r"[^a-z0-9\s-]", "", name)
    name = re.sub(r"\s+", "-", name)
    name = re.sub(r"-+", "-", name)
    name = name.strip("-")
    # Truncation can expose a trailing hyphen
    return name[:MAX_NAME_LENGTH].strip("-")


def resolve_url(href: str, base_url: str) -> str:
    """
    Resolve href against base_url.

    Scheme-relative references inherit the base scheme, absolute
    references are returned unchanged, and anything that cannot be
    resolved (bad reference or non-absolute base) is passed through.
    """
    base = urlparse(base_url)
    if not base.scheme or not base.netloc:
        return href
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def extract_verbs(html: str, text: str, base_url: str) -> ParsedPage:
    """
    Extract verbs from HTML.

    Args:
        html: Raw page markup
        text: Plain-text rendering of the page, passed through untouched
        base_url: URL the page was fetched from, used to resolve references

    Returns:
        ParsedPage with at most MAX_VERBS unique verbs
    """
    soup = BeautifulSoup(html or "", "html.parser")

    verbs: List[Verb] = []
    verbs.extend(_extract_links(soup, base_url))
    verbs.extend(_extract_forms(soup, base_url))
    verbs.extend(_extract_buttons(soup))

    return ParsedPage(verbs=dedupe_verbs(verbs)[:MAX_VERBS], text=text)


def dedupe_verbs(verbs: List[Verb]) -> List[Verb]:
    """Drop verbs whose name was already seen. First occurrence wins."""
    seen = set()
    unique = []
    for verb in verbs:
        if verb.name in seen:
            continue
        seen.add(verb.name)
        unique.append(verb)
    return unique


def _extract_links(soup: BeautifulSoup, base_url: str) -> List[Verb]:
    verbs = []
    for el in soup.find_all("a", href=True):
        href = el.get("href")
        link_text = el.get_text().strip()
        if not href or not link_text:
            continue

        # Too short is noise, too long is body prose
        if len(link_text) < MIN_LINK_TEXT or len(link_text) > MAX_LINK_TEXT:
            continue

        name = sanitize_verb_name(link_text)
        if not name:
            continue

        verbs.append(Verb(
            name=name,
            description=f"Navigate to: {link_text}",
            type="navigate",
            params=[],
            target=resolve_url(href, base_url),
        ))
    return verbs


def _extract_forms(soup: BeautifulSoup, base_url: str) -> List[Verb]:
    verbs = []
    for index, form in enumerate(soup.find_all("form")):
        action = form.get("action") or ""

        submit = form.select_one('button[type="submit"], input[type="submit"]')
        label = ""
        if submit is not None:
            label = submit.get_text().strip() or (submit.get("value") or "").strip()
        if not label:
            label = f"form-{index}"

        fields = []
        for control in form.find_all(["input", "textarea", "select"]):
            field_name = control.get("name")
            field_type = (control.get("type") or "").lower()
            if field_name and field_type not in _SKIPPED_FIELD_TYPES:
                fields.append(field_name)

        description = f"Submit form: {label}"
        if fields:
            description += f" (fields: {', '.join(fields)})"

        verbs.append(Verb(
            name=sanitize_verb_name(label) or f"form-{index}",
            description=description,
            type="form",
            params=fields,
            target=resolve_url(action, base_url),
        ))
    return verbs


def _extract_buttons(soup: BeautifulSoup) -> List[Verb]:
    verbs = []
    for el in soup.find_all(["button", "a"]):
        if el.name == "a" and not _has_button_class(el):
            continue
        # Form controls are already covered by the form verb
        if el.find_parent("form") is not None:
            continue

        button_text = el.get_text().strip()
        if len(button_text) < MIN_BUTTON_TEXT:
            continue

        # Without a handler the click can't be replayed
        handler = el.get("onclick") or el.get("data-action")
        if not handler:
            continue

        name = sanitize_verb_name(button_text)
        if not name:
            continue

        verbs.append(Verb(
            name=name,
            description=f"Click button: {button_text}",
            type="action",
            params=[],
            target=handler,
        ))
    return verbs


def _has_button_class(el) -> bool:
    classes = el.get("class") or []
    return any(c in _BUTTON_CLASSES for c in classes)


def _link_pairs(html: str, max_text: int = 200) -> List[Tuple[str, str]]:
    """(text, href) for every anchor with meaningful text, whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup.find_all(["script", "style", "noscript", "svg", "iframe"]):
        tag.decompose()

    pairs = []
    for el in soup.find_all("a", href=True):
        href = el.get("href") or ""
        link_text = " ".join(el.get_text().split())
        if href and 1 < len(link_text) < max_text:
            pairs.append((link_text, href))
    return pairs


def extract_links(html: str, limit: int = 100) -> str:
    """
    List page links for an LLM prompt.

    Output format:
    About us → /about
    Contact → https://example.com/contact
    """
    lines: List[str] = []
    for link_text, href in _link_pairs(html):
        line = f"{link_text} → {href}"
        if line not in lines:
            lines.append(line)
    return "\n".join(lines[:limit])


def html_to_markdown(html: str) -> str:
    """
    Reduce a page to markdown links, one per line.

    Much more compact than raw HTML while keeping every navigable target.
    """
    lines: List[str] = []
    for link_text, href in _link_pairs(html):
        line = f"[{link_text}]({href})"
        if line not in lines:
            lines.append(line)
    return "\n".join(lines).strip()


