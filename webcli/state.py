"""
Persistent tab storage.

One JSON file per tab under <state_dir>/tabs/<name>.json, so writing one
tab never touches another. Concurrent writers to the same tab race;
the last write wins.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, List, Dict, Any

from .errors import NotFoundError, StateIOError, ValidationError
from .types import Tab, TAB_FIELDS

logger = logging.getLogger(__name__)

TAB_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,50}")


def validate_tab_name(name: str) -> None:
    """Raise ValidationError unless name is 1-50 letters, digits, '_' or '-'."""
    if not isinstance(name, str) or not TAB_NAME_PATTERN.fullmatch(name):
        raise ValidationError(
            f'Invalid tab name "{name}": use 1-50 letters, digits, "-" or "_"'
        )


class TabStore:
    """
    File-backed store of named tabs.

    Reads are forgiving: a missing, unreadable or malformed record is
    reported as absent. Writes validate the tab name and raise
    StateIOError on filesystem failures.
    """

    DEFAULT_PATH = "~/.web-cli"

    def __init__(self, state_dir: Optional[os.PathLike] = None):
        self.state_dir = Path(os.path.expanduser(state_dir or self.DEFAULT_PATH))
        self.tabs_dir = self.state_dir / "tabs"

    def init(self) -> None:
        """Create the tabs directory if needed. Safe to call repeatedly."""
        try:
            self.tabs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StateIOError(f"Cannot create state directory {self.tabs_dir}: {e}") from e

    def _path(self, name: str) -> Path:
        return self.tabs_dir / f"{name}.json"

    def get(self, name: str) -> Optional[Tab]:
        """Load a tab, or None if it doesn't exist or can't be read."""
        if not TAB_NAME_PATTERN.fullmatch(name or ""):
            return None
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return Tab.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable tab record {path}: {e}")
            return None

    def set(self, name: str, tab: Tab) -> None:
        """Create or fully overwrite a tab."""
        validate_tab_name(name)
        self.init()
        self._write(self._path(name), tab.to_dict())
        logger.debug(f"Saved tab {name}: {tab.current_url}")

    def update(self, name: str, updates: Dict[str, Any]) -> Tab:
        """
        Shallow-merge fields into an existing tab.

        A None value clears an optional field.

        Returns:
            The merged tab as written

        Raises:
            NotFoundError: if the tab does not exist
            ValidationError: if updates names an unknown field
        """
        validate_tab_name(name)
        unknown = [k for k in updates if k not in TAB_FIELDS]
        if unknown:
            raise ValidationError(f"Unknown tab field(s) for \"{name}\": {', '.join(unknown)}")

        existing = self.get(name)
        if existing is None:
            raise NotFoundError(f'Tab "{name}" does not exist')

        for key, value in updates.items():
            setattr(existing, key, value)
        self.set(name, existing)
        return existing

    def delete(self, name: str) -> None:
        """Remove a tab. Does nothing if it doesn't exist."""
        validate_tab_name(name)
        try:
            self._path(name).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StateIOError(f'Cannot remove tab "{name}": {e}') from e

    def list(self) -> List[str]:
        """Names of all stored tabs, sorted."""
        if not self.tabs_dir.exists():
            return []
        return sorted(
            path.stem for path in self.tabs_dir.glob("*.json")
            if TAB_NAME_PATTERN.fullmatch(path.stem)
        )

    def get_all(self) -> Dict[str, Tab]:
        """All readable tabs keyed by name."""
        tabs = {}
        for name in self.list():
            tab = self.get(name)
            if tab is not None:
                tabs[name] = tab
        return tabs

    def _write(self, path: Path, data: Dict[str, Any]) -> None:
        """Write JSON atomically via a temp file in the same directory."""
        try:
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StateIOError(f"Cannot write tab record {path}: {e}") from e
