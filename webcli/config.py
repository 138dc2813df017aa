"""web-cli configuration."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_STATE_DIR = "~/.web-cli"
DEFAULT_MODEL = "llama3.1:8b"
DEFAULT_LINKS_BINARY = "links"
LOG_FILE_NAME = "web-cli.log"

_FALSE_VALUES = ("0", "false", "no", "off")
_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class WebCliConfig:
    """Settings shared by every command."""

    state_dir: Path = field(default_factory=lambda: Path(os.path.expanduser(DEFAULT_STATE_DIR)))
    model: str = DEFAULT_MODEL
    ollama_host: Optional[str] = None
    planner_enabled: bool = True
    links_binary: str = DEFAULT_LINKS_BINARY

    @property
    def tabs_dir(self) -> Path:
        return self.state_dir / "tabs"

    @property
    def log_path(self) -> Path:
        return self.state_dir / LOG_FILE_NAME

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> 'WebCliConfig':
        """
        Build config from the environment.

        A .env file is loaded first; variables already set in the real
        environment win.

        Variables:
            WEB_CLI_HOME: state directory (default ~/.web-cli)
            WEB_CLI_MODEL: Ollama model used by the planner
            OLLAMA_HOST: Ollama server URL
            WEB_CLI_PLANNER: set to 0/false/off to disable the planner
            WEB_CLI_LINKS: path or name of the links binary
        """
        load_dotenv(dotenv_path=env_file, override=False)

        config = cls()
        if home := os.environ.get("WEB_CLI_HOME"):
            config.state_dir = Path(os.path.expanduser(home))
        if model := os.environ.get("WEB_CLI_MODEL"):
            config.model = model
        if host := os.environ.get("OLLAMA_HOST"):
            config.ollama_host = host
        if links := os.environ.get("WEB_CLI_LINKS"):
            config.links_binary = links

        planner = os.environ.get("WEB_CLI_PLANNER")
        if planner is not None and planner.strip():
            config.planner_enabled = _parse_bool("WEB_CLI_PLANNER", planner)

        return config


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid value for {name}: {value!r} (expected on/off)")


def setup_logging(config: WebCliConfig, verbose: bool = False) -> None:
    """
    Log to <state_dir>/web-cli.log and to stderr.

    Stderr only shows warnings unless verbose is set.
    """
    config.state_dir.mkdir(parents=True, exist_ok=True)

    stream = logging.StreamHandler()
    stream.setLevel(logging.DEBUG if verbose else logging.WARNING)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(config.log_path),
            stream,
        ],
    )
