"""Records shared across web-cli: verbs, execution plans and tabs."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


VERB_TYPES = ("navigate", "form", "action")
PLAN_METHODS = ("navigate", "form", "action")

# Planner output is untrusted; deeper subverb levels are dropped.
MAX_VERB_DEPTH = 4


@dataclass
class Verb:
    """A named action available on a page, optionally grouping subverbs."""
    name: str
    description: str
    type: str
    params: Optional[List[str]] = None
    target: Optional[str] = None
    subverbs: Optional[List['Verb']] = None

    @property
    def is_container(self) -> bool:
        return bool(self.subverbs)

    @property
    def is_deterministic(self) -> bool:
        """A navigate verb with a known target needs no planning."""
        return self.type == "navigate" and bool(self.target)

    def find_subverb(self, name: str) -> Optional['Verb']:
        for sub in self.subverbs or []:
            if sub.name == name:
                return sub
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "type": self.type,
        }
        if self.params is not None:
            data["params"] = list(self.params)
        if self.target is not None:
            data["target"] = self.target
        if self.subverbs is not None:
            data["subverbs"] = [v.to_dict() for v in self.subverbs]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], max_depth: Optional[int] = None) -> 'Verb':
        """
        Build a Verb from a plain mapping.

        Args:
            data: Mapping with verb fields; unknown keys are ignored
            max_depth: Number of levels to keep, counting this verb. Levels
                below it are dropped. None keeps the whole tree.

        Returns:
            The parsed Verb
        """
        subverbs = None
        raw_subverbs = data.get("subverbs")
        if isinstance(raw_subverbs, list):
            if max_depth is None or max_depth > 1:
                child_depth = None if max_depth is None else max_depth - 1
                subverbs = [
                    cls.from_dict(sub, child_depth)
                    for sub in raw_subverbs if isinstance(sub, dict)
                ]
            else:
                subverbs = []

        params = data.get("params")
        if isinstance(params, str):
            params = [params]
        elif isinstance(params, list):
            params = [str(p) for p in params]
        else:
            params = None

        target = data.get("target")
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            type=str(data.get("type", "action")),
            params=params,
            target=str(target) if target is not None else None,
            subverbs=subverbs,
        )


@dataclass
class ExecutionPlan:
    """How to carry out a verb."""
    method: str
    description: str
    target_url: Optional[str] = None
    command: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"method": self.method}
        if self.target_url is not None:
            data["target_url"] = self.target_url
        if self.command is not None:
            data["command"] = self.command
        data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExecutionPlan':
        target_url = data.get("target_url")
        command = data.get("command")
        return cls(
            method=str(data.get("method", "")),
            description=str(data.get("description", "")),
            target_url=str(target_url) if target_url is not None else None,
            command=str(command) if command is not None else None,
        )


@dataclass
class Tab:
    """A persistent, named browsing session."""
    current_url: str
    last_updated: str
    verb_cache: Optional[Dict[str, Verb]] = None
    verb_cache_expires: Optional[str] = None
    execution_plan_cache: Optional[Dict[str, ExecutionPlan]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "current_url": self.current_url,
            "last_updated": self.last_updated,
        }
        if self.verb_cache is not None:
            data["verb_cache"] = {k: v.to_dict() for k, v in self.verb_cache.items()}
        if self.verb_cache_expires is not None:
            data["verb_cache_expires"] = self.verb_cache_expires
        if self.execution_plan_cache is not None:
            data["execution_plan_cache"] = {
                k: p.to_dict() for k, p in self.execution_plan_cache.items()
            }
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tab':
        verb_cache = data.get("verb_cache")
        plan_cache = data.get("execution_plan_cache")
        return cls(
            current_url=data["current_url"],
            last_updated=data["last_updated"],
            verb_cache=(
                {k: Verb.from_dict(v) for k, v in verb_cache.items()}
                if verb_cache is not None else None
            ),
            verb_cache_expires=data.get("verb_cache_expires"),
            execution_plan_cache=(
                {k: ExecutionPlan.from_dict(p) for k, p in plan_cache.items()}
                if plan_cache is not None else None
            ),
        )


def verbs_to_cache(verbs: List[Verb]) -> Dict[str, Verb]:
    """Key a verb list by name; later duplicates overwrite earlier ones."""
    cache: Dict[str, Verb] = {}
    for verb in verbs:
        cache[verb.name] = verb
    return cache


TAB_FIELDS = tuple(Tab.__dataclass_fields__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
