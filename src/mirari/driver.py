"""
Build orchestration for mirari projects.

This module drives the four user commands through the same sequence of
stages:

    IDLE -> MODE_RESOLVING -> LOCATING -> (INSTALLING) -> EXECUTING -> DONE

- configure: resolve mode, locate, install dependencies, generate build files
- build:     resolve mode, locate, compile and link (no installation)
- run:       resolve mode, locate, launch the artifact (interruptible)
- clean:     remove the located project's generated files; a missing
             project is not an error

The mode flags are resolved before the project is looked up, so a
conflict is reported before anything else is touched. Stages run
strictly in order and the first failure ends the command. An operator
interrupt is checked between steps, so it always ends in failure even
when no external process was running.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .backend import Backend, backend_for, clean_project_dir
from .config import ParsedProject, parse_project
from .errors import (
    AmbiguousProjectError,
    ConfigParseError,
    MirariError,
    OperationInterruptedError,
    ProjectNotFoundError,
)
from .mode import TargetMode, ToolchainSwitch, resolve_mode
from .packages import DependencyInstaller, InstallResult
from .project import ProjectConfig, locate_project
from .runner import CommandOutcome, ProcessRunner
from .settings import DEFAULT_TOOLS, ToolSettings


class Stage(Enum):
    """Stages of a command, in execution order."""

    IDLE = "idle"
    MODE_RESOLVING = "mode-resolving"
    LOCATING = "locating"
    INSTALLING = "installing"
    EXECUTING = "executing"
    DONE = "done"


@dataclass
class ModeFlags:
    """Raw target mode flags as given on the command line."""

    unix: bool = False
    xen: bool = False
    socket: bool = False
    switch: Optional[str] = None

    def resolve(self) -> TargetMode:
        return resolve_mode(use_direct=self.unix, use_hypervisor=self.xen, use_socket=self.socket)

    @property
    def toolchain_switch(self) -> Optional[ToolchainSwitch]:
        return ToolchainSwitch.from_option(self.switch)


@dataclass
class CommandResult:
    """Result of one configure/build/run/clean command.

    ``stage`` is DONE on success, otherwise the stage that failed.
    """

    command: str
    success: bool
    stage: Stage
    message: str
    mode: Optional[TargetMode] = None
    project: Optional[ProjectConfig] = None
    install: Optional[InstallResult] = None
    outcomes: List[CommandOutcome] = field(default_factory=list)
    generated: List[Path] = field(default_factory=list)
    removed: List[Path] = field(default_factory=list)
    error: Optional[MirariError] = None
    elapsed: float = 0.0


BackendFactory = Callable[[TargetMode, Path, ProcessRunner, Optional[ToolchainSwitch]], Backend]


class _Traversal:
    """Tracks the stage of one command and builds its result."""

    def __init__(self, command: str):
        self.result = CommandResult(command=command, success=False, stage=Stage.IDLE, message="")
        self.start_time = time.time()

    def enter(self, stage: Stage) -> None:
        logging.debug(f"{self.result.command}: {self.result.stage.value} -> {stage.value}")
        self.result.stage = stage

    def succeed(self, message: str) -> CommandResult:
        self.result.stage = Stage.DONE
        self.result.success = True
        self.result.message = message
        self.result.elapsed = time.time() - self.start_time
        return self.result

    def fail(self, error: MirariError) -> CommandResult:
        self.result.success = False
        self.result.error = error
        self.result.message = str(error)
        self.result.elapsed = time.time() - self.start_time
        outcome = getattr(error, "outcome", None)
        if outcome is not None and outcome not in self.result.outcomes:
            self.result.outcomes.append(outcome)
        logging.info(f"{self.result.command} failed during {self.result.stage.value}: {error}")
        return self.result


class BuildDriver:
    """
    Runs mirari commands for the project in a directory.

    Example usage:
        driver = BuildDriver()
        result = driver.configure(ModeFlags(xen=True))
        if result.success:
            result = driver.build(ModeFlags(xen=True))
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        search_dir: Optional[Path] = None,
        installer: Optional[DependencyInstaller] = None,
        backend_factory: Optional[BackendFactory] = None,
        tools: ToolSettings = DEFAULT_TOOLS,
    ):
        """
        Initialize build driver.

        Args:
            runner: Process runner shared by all external commands
            search_dir: Directory scanned for the configuration file
                (default: current directory at call time)
            installer: Dependency installer (default: opam based)
            backend_factory: Creates the backend for a mode
            tools: Names of external executables
        """
        self.runner = runner if runner is not None else ProcessRunner()
        self.search_dir = search_dir
        self.installer = installer if installer is not None else DependencyInstaller(self.runner)
        self.tools = tools
        if backend_factory is None:
            backend_factory = lambda mode, project_dir, runner, switch: backend_for(  # noqa: E731
                mode, project_dir, runner, switch=switch, tools=self.tools
            )
        self.backend_factory = backend_factory

    def _search_dir(self) -> Path:
        return self.search_dir if self.search_dir is not None else Path.cwd()

    def _prepare(
        self, traversal: _Traversal, flags: ModeFlags, file: Optional[str]
    ) -> TargetMode:
        # A conflict is reported whatever the directory contains
        traversal.enter(Stage.MODE_RESOLVING)
        mode = flags.resolve()
        traversal.result.mode = mode
        logging.info(f"Target mode: {mode.value}")

        traversal.enter(Stage.LOCATING)
        traversal.result.project = locate_project(file, search_dir=self._search_dir())
        return mode

    def _check_cancelled(self, traversal: _Traversal) -> None:
        """Raise if the operator interrupted the command between steps."""
        if self.runner.token.cancelled:
            raise OperationInterruptedError(f"{traversal.result.command} interrupted")

    def _backend(self, project: ProjectConfig, mode: TargetMode, flags: ModeFlags) -> Backend:
        return self.backend_factory(mode, project.directory, self.runner, flags.toolchain_switch)

    def configure(
        self, flags: ModeFlags, file: Optional[str] = None, no_install: bool = False
    ) -> CommandResult:
        """Install dependencies and generate build files.

        Args:
            flags: Target mode flags
            file: Configuration file (scanned for if None)
            no_install: Never invoke the package manager

        Returns:
            CommandResult for the configure command
        """
        traversal = _Traversal("configure")
        try:
            mode = self._prepare(traversal, flags, file)
            project = traversal.result.project

            traversal.enter(Stage.INSTALLING)
            parsed = self._parse(project)
            traversal.result.install = self.installer.ensure_installed(
                project, mode, flags.toolchain_switch, skip=no_install, parsed=parsed
            )

            self._check_cancelled(traversal)
            traversal.enter(Stage.EXECUTING)
            backend = self._backend(project, mode, flags)
            traversal.result.generated = backend.generate_build_files(parsed)
            self._check_cancelled(traversal)
        except MirariError as e:
            return traversal.fail(e)

        return traversal.succeed(f"Configured {parsed.name} for {mode.value}")

    def build(self, flags: ModeFlags, file: Optional[str] = None) -> CommandResult:
        """Compile an already configured project.

        Returns:
            CommandResult for the build command; NotConfiguredError if
            configure has not been run for the resolved mode
        """
        traversal = _Traversal("build")
        try:
            mode = self._prepare(traversal, flags, file)
            project = traversal.result.project

            self._check_cancelled(traversal)
            traversal.enter(Stage.EXECUTING)
            parsed = self._parse(project)
            backend = self._backend(project, mode, flags)
            traversal.result.outcomes.extend(backend.compile(parsed))
        except MirariError as e:
            return traversal.fail(e)

        return traversal.succeed(f"Built {backend.artifact_path(parsed)}")

    def run(self, flags: ModeFlags, file: Optional[str] = None) -> CommandResult:
        """Launch the built artifact for the resolved mode.

        The launched application keeps running until it exits or the
        runner's cancellation token is triggered.
        """
        traversal = _Traversal("run")
        try:
            mode = self._prepare(traversal, flags, file)
            project = traversal.result.project

            self._check_cancelled(traversal)
            traversal.enter(Stage.EXECUTING)
            parsed = self._parse(project)
            backend = self._backend(project, mode, flags)
            backend.ensure_configured(parsed)
            traversal.result.outcomes.append(backend.launch(parsed))
        except MirariError as e:
            return traversal.fail(e)

        return traversal.succeed(f"{parsed.name} exited cleanly")

    def clean(self) -> CommandResult:
        """Remove generated files and build outputs from the project directory.

        Only the located project's files are removed. Without a usable
        project, only files carrying the mirari header are removed. A
        missing project, or nothing to remove, still succeeds.
        """
        traversal = _Traversal("clean")
        traversal.enter(Stage.LOCATING)
        name = None
        try:
            project = locate_project(search_dir=self._search_dir())
            traversal.result.project = project
            name = self._parse(project).name
        except (ProjectNotFoundError, AmbiguousProjectError, ConfigParseError) as e:
            logging.info(f"Cleaning generated files only: {e}")

        traversal.enter(Stage.EXECUTING)
        try:
            traversal.result.removed = clean_project_dir(self._search_dir(), name)
        except OSError as e:
            return traversal.fail(MirariError(f"Failed to remove generated files: {e}"))

        count = len(traversal.result.removed)
        if count:
            return traversal.succeed(f"Removed {count} generated file(s)")
        return traversal.succeed("Nothing to clean")

    def _parse(self, project: ProjectConfig) -> ParsedProject:
        return parse_project(project.path)
