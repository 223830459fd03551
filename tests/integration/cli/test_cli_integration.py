"""
Integration test for CLI command invocation.

Runs the mirari command in a child interpreter against fake opam and
obuild executables placed first on PATH.
"""

import os
import stat
import subprocess
import sys
from pathlib import Path

import pytest

FAKE_OPAM = """#!/bin/sh
if [ "$1" = "list" ]; then
    cat "$FAKE_STATE/installed" 2>/dev/null
    exit 0
fi
if [ "$1" = "install" ]; then
    shift
    echo "install $*" >> "$FAKE_STATE/calls"
    for arg in "$@"; do
        case "$arg" in
            -*) ;;
            *) echo "$arg" >> "$FAKE_STATE/installed" ;;
        esac
    done
    exit 0
fi
exit 1
"""

FAKE_OBUILD = """#!/bin/sh
if [ "$1" = "build" ]; then
    mkdir -p dist/build/mir-www
    printf '#!/bin/sh\\necho hello from www\\n' > dist/build/mir-www/mir-www
    chmod +x dist/build/mir-www/mir-www
fi
exit 0
"""


def write_tool(bin_dir: Path, name: str, script: str) -> None:
    path = bin_dir / name
    path.write_text(script)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture
def workspace(tmp_path):
    bin_dir = tmp_path / "bin"
    state_dir = tmp_path / "state"
    project_dir = tmp_path / "www"
    for directory in (bin_dir, state_dir, project_dir):
        directory.mkdir()
    write_tool(bin_dir, "opam", FAKE_OPAM)
    write_tool(bin_dir, "obuild", FAKE_OBUILD)
    (project_dir / "www.conf").write_text("[main]\nname = www\nmain = Dispatch.main\n")

    env = os.environ.copy()
    env["PATH"] = f"{bin_dir}{os.pathsep}{env.get('PATH', '')}"
    env["FAKE_STATE"] = str(state_dir)
    env.pop("OPAMSWITCH", None)
    return project_dir, state_dir, env


def mirari(workspace, *args):
    project_dir, _, env = workspace
    return subprocess.run(
        [sys.executable, "-m", "mirari.cli", *args],
        cwd=project_dir,
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )


@pytest.mark.integration
@pytest.mark.skipif(sys.platform == "win32", reason="fake tools are shell scripts")
class TestCLIIntegration:
    """CLI integration test class."""

    def test_cli_help_invocation(self, workspace):
        assert mirari(workspace, "--help").returncode == 0

    def test_configure_build_run_clean(self, workspace):
        project_dir, state_dir, _ = workspace

        assert mirari(workspace, "configure").returncode == 0
        assert (state_dir / "calls").read_text().count("install") == 1

        # Everything is installed now, so the second configure installs nothing
        assert mirari(workspace, "configure").returncode == 0
        assert (state_dir / "calls").read_text().count("install") == 1

        assert mirari(workspace, "build").returncode == 0
        result = mirari(workspace, "run")
        assert result.returncode == 0
        assert "hello from www" in result.stdout

        assert mirari(workspace, "clean").returncode == 0
        assert sorted(p.name for p in project_dir.iterdir()) == ["www.conf"]

    def test_conflict_exits_one_without_changes(self, workspace):
        project_dir, state_dir, _ = workspace

        result = mirari(workspace, "configure", "--xen", "--socket")

        assert result.returncode == 1
        assert "cannot combine hypervisor and socket modes" in result.stdout
        assert sorted(p.name for p in project_dir.iterdir()) == ["www.conf"]
        assert not (state_dir / "calls").exists()

    def test_build_before_configure(self, workspace):
        result = mirari(workspace, "build")

        assert result.returncode == 1
        assert "mirari configure" in result.stdout
