"""Error taxonomy for mirari.

Every failure that aborts a command derives from MirariError so the CLI
can report it with the step that failed and exit non-zero.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .runner import CommandOutcome


class MirariError(Exception):
    """Base exception for all mirari errors."""

    step = "mirari"


class ModeConflictError(MirariError):
    """Raised when mutually exclusive target mode flags are combined."""

    step = "mode selection"


class ProjectNotFoundError(MirariError):
    """Raised when no configuration file can be found."""

    step = "project discovery"


class AmbiguousProjectError(MirariError):
    """Raised when more than one configuration file is found."""

    step = "project discovery"

    def __init__(self, message: str, candidates: Optional[List[str]] = None):
        super().__init__(message)
        self.candidates = candidates or []


class ConfigParseError(MirariError):
    """Raised when a configuration file cannot be read or is malformed."""

    step = "configuration parsing"


class InstallError(MirariError):
    """Raised when the package manager fails."""

    step = "dependency installation"

    def __init__(self, message: str, outcome: Optional["CommandOutcome"] = None):
        super().__init__(message)
        self.outcome = outcome


class NotConfiguredError(MirariError):
    """Raised when build or run is attempted before configure."""

    step = "configuration check"


class ExecutionError(MirariError):
    """Raised when a backend command exits non-zero."""

    step = "execution"

    def __init__(self, message: str, outcome: Optional["CommandOutcome"] = None):
        super().__init__(message)
        self.outcome = outcome


class OperationInterruptedError(MirariError):
    """Raised when the operator cancels a running command."""

    step = "execution"

    def __init__(self, message: str, outcome: Optional["CommandOutcome"] = None):
        super().__init__(message)
        self.outcome = outcome
