"""web-cli: browse the web through a small catalog of named verbs."""

__version__ = "0.1.0"

from .browser import LinksBrowser, Page
from .config import WebCliConfig
from .errors import (
    WebCliError,
    ValidationError,
    NotFoundError,
    UnavailableError,
    UnsupportedMethodError,
    StateIOError,
    FetchError,
    PlanningError,
    ConfigError,
)
from .executor import (
    ExecutionResolver,
    ContainerListing,
    Navigation,
    Deterministic,
    PlanCacheKey,
    Unsupported,
)
from .llm import OllamaPlanner, Extraction
from .parser import extract_verbs, sanitize_verb_name, resolve_url, ParsedPage
from .state import TabStore, validate_tab_name
from .types import Verb, ExecutionPlan, Tab
from .verbs import VerbCachePolicy, Discovery, VERB_CACHE_TTL

__all__ = [
    # Records
    "Verb",
    "ExecutionPlan",
    "Tab",
    # Extraction
    "extract_verbs",
    "sanitize_verb_name",
    "resolve_url",
    "ParsedPage",
    # Storage
    "TabStore",
    "validate_tab_name",
    # Collaborators
    "LinksBrowser",
    "Page",
    "OllamaPlanner",
    "Extraction",
    # Cache policy
    "VerbCachePolicy",
    "Discovery",
    "VERB_CACHE_TTL",
    # Execution
    "ExecutionResolver",
    "ContainerListing",
    "Navigation",
    "Deterministic",
    "PlanCacheKey",
    "Unsupported",
    # Config
    "WebCliConfig",
    # Errors
    "WebCliError",
    "ValidationError",
    "NotFoundError",
    "UnavailableError",
    "UnsupportedMethodError",
    "StateIOError",
    "FetchError",
    "PlanningError",
    "ConfigError",
]
