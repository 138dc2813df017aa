"""Error types raised by web-cli."""


class WebCliError(Exception):
    """Base class for all handled web-cli failures."""

    pass


class ValidationError(WebCliError):
    """Raised when a tab name or tab field is malformed."""

    pass


class NotFoundError(WebCliError):
    """Raised when a tab, verb or subverb does not exist."""

    pass


class UnavailableError(WebCliError):
    """Raised when the planner is required but not configured or reachable."""

    pass


class UnsupportedMethodError(WebCliError):
    """Raised when an execution plan uses a method other than navigate."""

    pass


class StateIOError(WebCliError):
    """Raised when a tab record cannot be written or removed."""

    pass


class FetchError(WebCliError):
    """Raised when the text browser cannot retrieve a page."""

    pass


class PlanningError(WebCliError):
    """Raised when the planner cannot produce an execution plan for a verb."""

    pass


class ConfigError(WebCliError):
    """Raised when configuration values are invalid."""

    pass
