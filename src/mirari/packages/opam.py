"""opam package manager driver."""

import logging
from typing import Iterable, List, Optional, Set

from ..errors import InstallError
from ..mode import ToolchainSwitch
from ..runner import CommandOutcome, Invocation, ProcessRunner
from ..settings import DEFAULT_TOOLS, ToolSettings
from .package import IPackageManager


class OpamPackageManager(IPackageManager):
    """Queries and installs opam packages, optionally in a given switch."""

    def __init__(
        self,
        runner: ProcessRunner,
        switch: Optional[ToolchainSwitch] = None,
        tools: ToolSettings = DEFAULT_TOOLS,
    ):
        self.runner = runner
        self.switch = switch
        self.tools = tools

    def _switch_args(self) -> List[str]:
        if self.switch is None:
            return []
        return [f"--switch={self.switch.name}"]

    def list_installed(self) -> Set[str]:
        argv = [self.tools.opam, "list", "--installed", "--short"] + self._switch_args()
        outcome = self.runner.run(Invocation(argv, echo=False))
        if outcome.interrupted:
            outcome.check("Listing installed opam packages")
        if outcome.returncode != 0:
            raise InstallError(
                f"Failed to list installed opam packages (exit code {outcome.returncode}):\n"
                + outcome.tail(),
                outcome=outcome,
            )

        installed = set()
        for line in outcome.output.splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                installed.add(line.split()[0])
        logging.debug(f"{len(installed)} opam packages installed")
        return installed

    def install(self, names: Iterable[str]) -> CommandOutcome:
        argv = [self.tools.opam, "install", "--yes"] + self._switch_args() + list(names)
        return self.runner.run(Invocation(argv))
