"""Xen backend: the application is linked into a standalone microkernel.

Compilation produces an object file with obuild, which is linked against
the mirage-xen runtime into ``mir-<name>.xen``. Running boots the kernel
with ``xl create -c``; if that is interrupted the guest is destroyed.
"""

import logging
from pathlib import Path
from typing import List, Tuple

from ..config import ParsedProject
from ..errors import ExecutionError
from ..mode import TargetMode
from ..runner import CommandOutcome, Invocation
from .base import GENERATED_COMMENT, LAUNCH_OUTPUT_LINES, Backend

# Runtime pieces shipped by mirage-xen, linked in this order
RUNTIME_OBJECTS = (
    "x86_64.o",
    "libocaml.a",
    "libxen.a",
    "libxencaml.a",
    "libdiet.a",
    "libm.a",
    "longjmp.o",
)
LINKER_SCRIPT = "mirage-x86_64.lds"


class XenBackend(Backend):
    """Builds and boots a Xen microkernel."""

    mode = TargetMode.HYPERVISOR_GUEST
    libraries = ("mirage", "mirage-net")

    def xl_config_path(self, parsed: ParsedProject) -> Path:
        return self.project_dir / f"{parsed.name}.xl"

    def artifact_path(self, parsed: ParsedProject) -> Path:
        return self.project_dir / f"{self.executable_name(parsed)}.xen"

    def object_path(self, parsed: ParsedProject) -> Path:
        return self.build_dir(parsed) / f"{self.executable_name(parsed)}.o"

    def generated_files(self, parsed: ParsedProject) -> List[Path]:
        return super().generated_files(parsed) + [self.xl_config_path(parsed)]

    def render_xl(self, parsed: ParsedProject) -> str:
        return "\n".join(
            [
                GENERATED_COMMENT,
                f'name = "{parsed.name}"',
                f'kernel = "{self.artifact_path(parsed)}"',
                f"memory = {parsed.xen_memory}",
                'on_crash = "preserve"',
                "",
            ]
        )

    def _render_files(self, parsed: ParsedProject) -> List[Tuple[Path, str]]:
        return super()._render_files(parsed) + [
            (self.xl_config_path(parsed), self.render_xl(parsed)),
        ]

    def runtime_dir(self) -> Path:
        """Locate the mirage-xen runtime libraries with ocamlfind.

        Raises:
            ExecutionError: If ocamlfind fails or prints nothing
        """
        outcome = self._run([self.tools.ocamlfind, "query", "mirage-xen"], "ocamlfind query", echo=False)
        lines = outcome.output.strip().splitlines()
        if not lines:
            raise ExecutionError("ocamlfind query mirage-xen returned no path", outcome=outcome)
        return Path(lines[-1].strip())

    def link_command(self, parsed: ParsedProject, runtime_dir: Path) -> List[str]:
        return [
            self.tools.ld,
            "-d",
            "-nostdlib",
            "-m",
            "elf_x86_64",
            "-T",
            str(runtime_dir / LINKER_SCRIPT),
            str(runtime_dir / RUNTIME_OBJECTS[0]),
            str(self.object_path(parsed)),
            *(str(runtime_dir / name) for name in RUNTIME_OBJECTS[1:]),
            "-o",
            str(self.artifact_path(parsed)),
        ]

    def compile(self, parsed: ParsedProject) -> List[CommandOutcome]:
        self.ensure_configured(parsed)
        outcomes = self._obuild(parsed, configure_args=["--executable-as-obj"])
        runtime_dir = self.runtime_dir()
        logging.debug(f"mirage-xen runtime: {runtime_dir}")
        outcomes.append(self._run(self.link_command(parsed, runtime_dir), "Linking Xen kernel"))
        return outcomes

    def launch_invocation(self, parsed: ParsedProject) -> Invocation:
        return Invocation(
            argv=[self.tools.xl, "create", "-c", str(self.xl_config_path(parsed))],
            cwd=self.project_dir,
            env=self.env,
            cleanup=[[self.tools.xl, "destroy", parsed.name]],
            max_output_lines=LAUNCH_OUTPUT_LINES,
        )
