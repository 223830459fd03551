"""Tool names and generated file names used by mirari.

The only environment contract is the ambient opam switch (OPAMSWITCH),
which ``--switch`` overrides per invocation.
"""

from dataclasses import dataclass

CONF_EXTENSION = ".conf"
MODE_MARKER_FILE = ".mirari-mode"
SWITCH_ENV_VAR = "OPAMSWITCH"


@dataclass(frozen=True)
class ToolSettings:
    """Executable names of the external tools mirari drives."""

    opam: str = "opam"
    obuild: str = "obuild"
    ocamlfind: str = "ocamlfind"
    ld: str = "ld"
    xl: str = "xl"


DEFAULT_TOOLS = ToolSettings()
