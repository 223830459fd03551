"""UNIX backends: the application runs as an ordinary host process."""

from pathlib import Path
from typing import List

from ..config import ParsedProject
from ..mode import TargetMode
from ..runner import CommandOutcome, Invocation
from .base import LAUNCH_OUTPUT_LINES, Backend


class UnixBackend(Backend):
    """Shared build and launch logic for the UNIX modes."""

    def artifact_path(self, parsed: ParsedProject) -> Path:
        return self.build_dir(parsed) / self.executable_name(parsed)

    def compile(self, parsed: ParsedProject) -> List[CommandOutcome]:
        self.ensure_configured(parsed)
        return self._obuild(parsed)

    def launch_invocation(self, parsed: ParsedProject) -> Invocation:
        return Invocation(
            argv=[str(self.artifact_path(parsed))],
            cwd=self.project_dir,
            env=self.env,
            max_output_lines=LAUNCH_OUTPUT_LINES,
        )


class UnixDirectBackend(UnixBackend):
    """UNIX process using the direct (tap device) network stack."""

    mode = TargetMode.HOST_DIRECT
    libraries = ("mirage", "mirage-net.direct")


class UnixSocketBackend(UnixBackend):
    """UNIX process using host sockets for networking."""

    mode = TargetMode.HOST_SOCKET
    libraries = ("mirage", "mirage-net.socket")
