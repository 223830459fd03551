"""Backend toolchain base class.

A backend knows how to turn a parsed project into generated build files,
how to compile them for its target mode, and how to launch the result.
All external commands go through the ProcessRunner.
"""

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import ParsedProject
from ..errors import NotConfiguredError
from ..mode import TargetMode, ToolchainSwitch
from ..runner import CommandOutcome, Invocation, ProcessRunner
from ..settings import DEFAULT_TOOLS, MODE_MARKER_FILE, SWITCH_ENV_VAR, ToolSettings

GENERATED_HEADER = "(* Generated by mirari. Do not edit. *)"
# Header of generated files using shell-style comments
GENERATED_COMMENT = "# Generated by mirari. Do not edit."

# Output lines kept from a launched application
LAUNCH_OUTPUT_LINES = 1000

# Generated files and build outputs removed by `mirari clean`, per project name
CLEAN_FILE_PATTERNS = ("{name}.obuild", "{name}.xl", "mir-{name}", "mir-{name}.*")
CLEAN_DIRS = ("dist", "_obuild")


class Backend(ABC):
    """Base class for target-mode specific toolchains."""

    mode: TargetMode
    # ocamlfind libraries providing the OS module for this mode
    libraries: Tuple[str, ...] = ()

    def __init__(
        self,
        project_dir: Path,
        runner: ProcessRunner,
        switch: Optional[ToolchainSwitch] = None,
        tools: ToolSettings = DEFAULT_TOOLS,
    ):
        """Initialize backend.

        Args:
            project_dir: Directory holding the configuration file
            runner: Runner for toolchain commands
            switch: opam switch to build with (default: ambient)
            tools: Names of external executables
        """
        self.project_dir = Path(project_dir)
        self.runner = runner
        self.switch = switch
        self.tools = tools

    @property
    def env(self) -> Optional[Dict[str, str]]:
        if self.switch is None:
            return None
        return {SWITCH_ENV_VAR: self.switch.name}

    @property
    def marker_path(self) -> Path:
        return self.project_dir / MODE_MARKER_FILE

    def executable_name(self, parsed: ParsedProject) -> str:
        return f"mir-{parsed.name}"

    def build_dir(self, parsed: ParsedProject) -> Path:
        name = self.executable_name(parsed)
        return self.project_dir / "dist" / "build" / name

    def generated_files(self, parsed: ParsedProject) -> List[Path]:
        """Files written by generate_build_files."""
        return [
            self.project_dir / "main.ml",
            self.project_dir / f"{parsed.name}.obuild",
            self.marker_path,
        ]

    def configured_mode(self) -> Optional[TargetMode]:
        """Mode recorded by the last configure, or None."""
        try:
            return TargetMode.from_string(self.marker_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

    def ensure_configured(self, parsed: ParsedProject) -> None:
        """Check that configure ran for this mode.

        Raises:
            NotConfiguredError: If generated files are missing or were
                generated for another mode
        """
        missing = [path.name for path in self.generated_files(parsed) if not path.exists()]
        if missing:
            raise NotConfiguredError(
                f"Project '{parsed.name}' is not configured (missing {', '.join(missing)}). "
                + "Run 'mirari configure' first."
            )
        configured = self.configured_mode()
        if configured is not self.mode:
            found = configured.value if configured else "unknown"
            raise NotConfiguredError(
                f"Project '{parsed.name}' is configured for {found}, not {self.mode.value}. "
                + "Run 'mirari configure' again with the wanted mode."
            )

    def render_main(self, parsed: ParsedProject) -> str:
        return f"{GENERATED_HEADER}\n\nlet () = OS.Main.run ({parsed.entry_point} ())\n"

    def render_obuild(self, parsed: ParsedProject) -> str:
        build_deps = ", ".join(list(self.libraries) + parsed.depends)
        return "\n".join(
            [
                f"name: {parsed.name}",
                "version: 0.0.0",
                "obuild-ver: 1",
                "",
                f"executable {self.executable_name(parsed)}",
                "  main: main.ml",
                "  src-dir: .",
                f"  build-deps: {build_deps}",
                "",
            ]
        )

    def generate_build_files(self, parsed: ParsedProject) -> List[Path]:
        """Write main.ml, the obuild file and the mode marker.

        Returns:
            Paths of the written files
        """
        written = []
        for path, content in self._render_files(parsed):
            path.write_text(content, encoding="utf-8")
            logging.info(f"Generated {path.name}")
            written.append(path)
        self.marker_path.write_text(self.mode.value + "\n", encoding="utf-8")
        written.append(self.marker_path)
        return written

    def _render_files(self, parsed: ParsedProject) -> List[Tuple[Path, str]]:
        return [
            (self.project_dir / "main.ml", self.render_main(parsed)),
            (self.project_dir / f"{parsed.name}.obuild", self.render_obuild(parsed)),
        ]

    def _run(self, argv: Sequence[str], step: str, **kwargs) -> CommandOutcome:
        invocation = Invocation(argv=list(argv), cwd=self.project_dir, env=self.env, **kwargs)
        return self.runner.run(invocation).check(step)

    def _obuild(self, parsed: ParsedProject, configure_args: Sequence[str] = ()) -> List[CommandOutcome]:
        return [
            self._run([self.tools.obuild, "configure", *configure_args], "obuild configure"),
            self._run([self.tools.obuild, "build"], "obuild build"),
        ]

    @abstractmethod
    def artifact_path(self, parsed: ParsedProject) -> Path:
        """Path of the final artifact produced by compile."""
        pass

    @abstractmethod
    def compile(self, parsed: ParsedProject) -> List[CommandOutcome]:
        """Compile and link the configured project.

        Raises:
            ExecutionError: If a toolchain command fails
            OperationInterruptedError: If compilation was interrupted
        """
        pass

    @abstractmethod
    def launch_invocation(self, parsed: ParsedProject) -> Invocation:
        """Command that runs the built artifact."""
        pass

    def launch(self, parsed: ParsedProject) -> CommandOutcome:
        """Run the built artifact until it exits or is interrupted.

        Raises:
            NotConfiguredError: If the artifact has not been built
            ExecutionError: If the application exits non-zero
            OperationInterruptedError: If the operator interrupted it
        """
        artifact = self.artifact_path(parsed)
        if not artifact.exists():
            raise NotConfiguredError(
                f"{artifact.name} not found. Run 'mirari build' first."
            )
        invocation = self.launch_invocation(parsed)
        return self.runner.run(invocation).check(f"Running {parsed.name}")


def _has_header(path: Path, header: str) -> bool:
    try:
        with open(path, encoding="utf-8") as f:
            return f.readline().rstrip("\n") == header
    except (OSError, UnicodeDecodeError):
        return False


def clean_project_dir(project_dir: Path, name: Optional[str] = None) -> List[Path]:
    """Remove generated files and build outputs from a directory.

    With a project name, that project's obuild and xl files, its
    ``mir-<name>`` artifacts and the build directories are removed.
    Without one, only files that carry the mirari header are removed.
    main.ml is only ever removed when it carries the generated header.
    Missing files are not an error.

    Args:
        project_dir: Directory to clean
        name: Application name from the located configuration file

    Returns:
        Paths that were removed
    """
    project_dir = Path(project_dir)
    candidates = [project_dir / MODE_MARKER_FILE]

    main_ml = project_dir / "main.ml"
    if _has_header(main_ml, GENERATED_HEADER):
        candidates.append(main_ml)
    elif main_ml.exists():
        logging.debug(f"Leaving {main_ml}: not generated by mirari")

    if name is not None:
        for pattern in CLEAN_FILE_PATTERNS:
            candidates.extend(sorted(project_dir.glob(pattern.format(name=name))))
    else:
        candidates.extend(
            path for path in sorted(project_dir.glob("*.xl")) if _has_header(path, GENERATED_COMMENT)
        )

    removed = []
    for path in candidates:
        if path not in removed and (path.is_file() or path.is_symlink()):
            path.unlink()
            removed.append(path)

    if name is not None:
        for dir_name in CLEAN_DIRS:
            path = project_dir / dir_name
            if path.is_dir():
                shutil.rmtree(path)
                removed.append(path)

    for path in removed:
        logging.info(f"Removed {path}")
    return removed
