"""Dependency installation.

Works out which opam packages a project needs for a target mode, and
installs only the ones that are missing. Running it again with nothing
missing does not invoke the installer at all.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..config import ParsedProject, parse_project
from ..errors import InstallError
from ..mode import TargetMode, ToolchainSwitch
from ..project import ProjectConfig
from ..runner import ProcessRunner
from .opam import OpamPackageManager
from .package import IPackageManager

# Backend libraries every application needs, per target mode
MODE_PACKAGES: Dict[TargetMode, Tuple[str, ...]] = {
    TargetMode.HYPERVISOR_GUEST: ("mirage", "mirage-xen"),
    TargetMode.HOST_DIRECT: ("mirage", "mirage-unix", "mirage-net-direct"),
    TargetMode.HOST_SOCKET: ("mirage", "mirage-unix", "mirage-net-socket"),
}
if set(MODE_PACKAGES) != set(TargetMode):
    raise RuntimeError("MODE_PACKAGES must cover every TargetMode")


class InstallStatus(Enum):
    """What ensure_installed did."""

    SKIPPED = "skipped"
    UP_TO_DATE = "up-to-date"
    INSTALLED = "installed"


@dataclass(frozen=True)
class InstallPlan:
    """Required packages split into already installed and missing."""

    required: Tuple[str, ...]
    satisfied: Tuple[str, ...]
    missing: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.missing


@dataclass(frozen=True)
class InstallResult:
    """Result of ensure_installed."""

    status: InstallStatus
    plan: Optional[InstallPlan] = None


def _unique(names: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


def required_packages(parsed: ParsedProject, mode: TargetMode) -> List[str]:
    """List the opam packages a project needs for a mode, in a stable order.

    ``depends`` entries are ocamlfind library names; the opam package is
    the part before the first dot (``cohttp.syntax`` -> ``cohttp``).
    """
    libraries = [dep.split(".", 1)[0] for dep in parsed.depends]
    return _unique(
        list(MODE_PACKAGES[mode]) + parsed.packages + libraries + parsed.packages_for(mode)
    )


def plan_install(required: Iterable[str], installed: Iterable[str]) -> InstallPlan:
    """Partition required packages into satisfied and missing ones."""
    required = tuple(_unique(required))
    installed_set = set(installed)
    return InstallPlan(
        required=required,
        satisfied=tuple(name for name in required if name in installed_set),
        missing=tuple(name for name in required if name not in installed_set),
    )


PackageManagerFactory = Callable[[Optional[ToolchainSwitch]], IPackageManager]


class DependencyInstaller:
    """Ensures the packages a project needs are installed.

    Example usage:
        installer = DependencyInstaller(runner)
        result = installer.ensure_installed(project, TargetMode.HOST_DIRECT, None, skip=False)
    """

    def __init__(
        self,
        runner: ProcessRunner,
        manager_factory: Optional[PackageManagerFactory] = None,
    ):
        """Initialize installer.

        Args:
            runner: Runner used for package manager commands
            manager_factory: Builds the package manager for a switch
                (default: opam)
        """
        self.runner = runner
        if manager_factory is None:
            manager_factory = lambda switch: OpamPackageManager(runner, switch)  # noqa: E731
        self.manager_factory = manager_factory

    def ensure_installed(
        self,
        project: ProjectConfig,
        mode: TargetMode,
        switch: Optional[ToolchainSwitch],
        skip: bool,
        parsed: Optional[ParsedProject] = None,
    ) -> InstallResult:
        """Install whatever the project is missing for the given mode.

        Args:
            project: Located configuration file
            mode: Target mode being configured
            switch: opam switch to install into (default: ambient)
            skip: Do not query or invoke the package manager at all
            parsed: Already parsed configuration (parsed from project if None)

        Returns:
            InstallResult describing what was done

        Raises:
            ConfigParseError: If the configuration cannot be parsed
            InstallError: If the package manager fails
            OperationInterruptedError: If installation was interrupted
        """
        if skip:
            logging.info("Skipping dependency installation (--no-install)")
            return InstallResult(status=InstallStatus.SKIPPED)

        if parsed is None:
            parsed = parse_project(project.path)

        manager = self.manager_factory(switch)
        plan = plan_install(required_packages(parsed, mode), manager.list_installed())

        if plan.is_empty:
            logging.info(f"All {len(plan.required)} required packages already installed")
            return InstallResult(status=InstallStatus.UP_TO_DATE, plan=plan)

        logging.info(f"Installing missing packages: {', '.join(plan.missing)}")
        outcome = manager.install(plan.missing)
        if outcome.interrupted:
            outcome.check("Package installation")
        if outcome.returncode != 0:
            raise InstallError(
                f"Failed to install {', '.join(plan.missing)} (exit code {outcome.returncode})",
                outcome=outcome,
            )
        return InstallResult(status=InstallStatus.INSTALLED, plan=plan)
