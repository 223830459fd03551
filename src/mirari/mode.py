"""Target mode selection.

Turns the ``--unix``, ``--xen`` and ``--socket`` flags into exactly one
TargetMode. The precedence rules are:

1. ``--xen`` with ``--unix`` is a conflict.
2. ``--xen`` with ``--socket`` is a conflict.
3. ``--xen`` alone selects the Xen microkernel.
4. ``--socket`` selects the UNIX socket backend, even when ``--unix`` is
   also given. This asymmetry is kept on purpose; see DESIGN.md.
5. Otherwise the default (UNIX direct) is used.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ModeConflictError


class TargetMode(Enum):
    """Deployment backend an application is built for."""

    HYPERVISOR_GUEST = "xen"
    HOST_DIRECT = "unix-direct"
    HOST_SOCKET = "unix-socket"

    @property
    def is_host(self) -> bool:
        return self is not TargetMode.HYPERVISOR_GUEST

    @classmethod
    def from_string(cls, value: str) -> "TargetMode":
        """Convert a mode name (as written in marker files) to a TargetMode.

        Raises:
            ValueError: If the value does not name a mode
        """
        return cls(value.strip())


@dataclass(frozen=True)
class ToolchainSwitch:
    """An opam compiler switch to use instead of the ambient one."""

    name: str

    @classmethod
    def from_option(cls, value: Optional[str]) -> Optional["ToolchainSwitch"]:
        if value is None or not value.strip():
            return None
        return cls(value.strip())

    def __str__(self) -> str:
        return self.name


def resolve_mode(
    use_direct: bool,
    use_hypervisor: bool,
    use_socket: bool,
    default: TargetMode = TargetMode.HOST_DIRECT,
) -> TargetMode:
    """Resolve mode flags into a single TargetMode.

    Args:
        use_direct: ``--unix`` was given
        use_hypervisor: ``--xen`` was given
        use_socket: ``--socket`` was given
        default: Mode used when no flag is given

    Returns:
        The selected TargetMode

    Raises:
        ModeConflictError: If ``--xen`` is combined with a host flag
    """
    if use_hypervisor and use_direct:
        raise ModeConflictError("cannot combine hypervisor and direct host modes")
    if use_hypervisor and use_socket:
        raise ModeConflictError("cannot combine hypervisor and socket modes")
    if use_hypervisor:
        return TargetMode.HYPERVISOR_GUEST
    if use_socket:
        return TargetMode.HOST_SOCKET
    return default
