"""Backend toolchains for each target mode."""

from pathlib import Path
from typing import Dict, Optional, Type

from ..mode import TargetMode, ToolchainSwitch
from ..runner import ProcessRunner
from ..settings import DEFAULT_TOOLS, ToolSettings
from .base import GENERATED_HEADER, Backend, clean_project_dir
from .unix import UnixDirectBackend, UnixSocketBackend
from .xen import XenBackend

BACKENDS: Dict[TargetMode, Type[Backend]] = {
    TargetMode.HYPERVISOR_GUEST: XenBackend,
    TargetMode.HOST_DIRECT: UnixDirectBackend,
    TargetMode.HOST_SOCKET: UnixSocketBackend,
}
if set(BACKENDS) != set(TargetMode):
    raise RuntimeError("BACKENDS must cover every TargetMode")


def backend_for(
    mode: TargetMode,
    project_dir: Path,
    runner: ProcessRunner,
    switch: Optional[ToolchainSwitch] = None,
    tools: ToolSettings = DEFAULT_TOOLS,
) -> Backend:
    """Create the backend for a target mode."""
    return BACKENDS[mode](project_dir, runner, switch=switch, tools=tools)


__all__ = [
    "BACKENDS",
    "GENERATED_HEADER",
    "Backend",
    "UnixDirectBackend",
    "UnixSocketBackend",
    "XenBackend",
    "backend_for",
    "clean_project_dir",
]
