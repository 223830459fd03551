"""
Unit tests for BuildDriver.

Tests cover:
- Stage reached for each kind of failure
- Mode conflicts detected before any side effect
- configure/build/run/clean through real backends and a mock runner
"""

from unittest.mock import Mock

import pytest

from mirari.driver import BuildDriver, ModeFlags, Stage
from mirari.errors import (
    AmbiguousProjectError,
    ConfigParseError,
    ExecutionError,
    InstallError,
    ModeConflictError,
    NotConfiguredError,
    OperationInterruptedError,
    ProjectNotFoundError,
)
from mirari.mode import TargetMode, ToolchainSwitch
from mirari.packages import InstallResult, InstallStatus
from mirari.runner import CancellationToken, CommandOutcome


@pytest.fixture
def project_dir(tmp_path):
    (tmp_path / "www.conf").write_text("[main]\nname = www\nmain = Dispatch.main\n")
    return tmp_path


@pytest.fixture
def runner():
    runner = Mock()
    runner.token = CancellationToken()
    runner.run.side_effect = lambda invocation, allow_interrupt=True: CommandOutcome(
        argv=list(invocation.argv), returncode=0
    )
    return runner


@pytest.fixture
def installer():
    installer = Mock()
    installer.ensure_installed.return_value = InstallResult(status=InstallStatus.UP_TO_DATE)
    return installer


@pytest.fixture
def driver(project_dir, runner, installer):
    return BuildDriver(runner=runner, search_dir=project_dir, installer=installer)


class TestConfigure:
    def test_configure_success(self, driver, project_dir, installer):
        result = driver.configure(ModeFlags(xen=True))

        assert result.success
        assert result.stage is Stage.DONE
        assert result.mode is TargetMode.HYPERVISOR_GUEST
        assert result.project.path == project_dir / "www.conf"
        assert (project_dir / "www.xl").exists()
        assert (project_dir / ".mirari-mode").read_text().strip() == "xen"
        installer.ensure_installed.assert_called_once()

    def test_default_mode_is_direct(self, driver):
        assert driver.configure(ModeFlags()).mode is TargetMode.HOST_DIRECT

    def test_no_install_is_forwarded(self, driver, installer):
        driver.configure(ModeFlags(), no_install=True)

        assert installer.ensure_installed.call_args.kwargs["skip"] is True

    def test_switch_is_forwarded(self, driver, installer):
        driver.configure(ModeFlags(switch="4.01.0"))

        assert installer.ensure_installed.call_args.args[2] == ToolchainSwitch("4.01.0")

    def test_explicit_file(self, driver, project_dir):
        (project_dir / "other.conf").write_text("[main]\nname = other\n")

        result = driver.configure(ModeFlags(), file="other.conf")

        assert result.success
        assert (project_dir / "other.obuild").exists()

    @pytest.mark.parametrize(
        "flags",
        [ModeFlags(xen=True, unix=True), ModeFlags(xen=True, socket=True)],
    )
    def test_conflict_has_no_side_effects(self, driver, project_dir, runner, installer, flags):
        before = sorted(p.name for p in project_dir.iterdir())

        result = driver.configure(flags)

        assert not result.success
        assert result.stage is Stage.MODE_RESOLVING
        assert isinstance(result.error, ModeConflictError)
        installer.ensure_installed.assert_not_called()
        runner.run.assert_not_called()
        assert sorted(p.name for p in project_dir.iterdir()) == before

    @pytest.mark.parametrize("conf_files", [[], ["a.conf", "b.conf"]])
    def test_conflict_reported_before_discovery(self, tmp_path, runner, installer, conf_files):
        for name in conf_files:
            (tmp_path / name).write_text(f"[main]\nname = {name[0]}\n")
        driver = BuildDriver(runner=runner, search_dir=tmp_path, installer=installer)

        result = driver.configure(ModeFlags(xen=True, unix=True))

        assert result.stage is Stage.MODE_RESOLVING
        assert isinstance(result.error, ModeConflictError)
        assert result.project is None
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted(conf_files)

    def test_no_project(self, tmp_path, runner, installer):
        driver = BuildDriver(runner=runner, search_dir=tmp_path, installer=installer)

        result = driver.configure(ModeFlags())

        assert result.stage is Stage.LOCATING
        assert isinstance(result.error, ProjectNotFoundError)

    def test_ambiguous_project(self, driver, project_dir):
        (project_dir / "other.conf").write_text("[main]\nname = other\n")

        result = driver.configure(ModeFlags())

        assert result.stage is Stage.LOCATING
        assert isinstance(result.error, AmbiguousProjectError)
        assert result.error.candidates == ["other.conf", "www.conf"]

    def test_install_failure(self, driver, project_dir, installer):
        outcome = CommandOutcome(argv=["opam", "install"], returncode=1)
        installer.ensure_installed.side_effect = InstallError("opam failed", outcome=outcome)

        result = driver.configure(ModeFlags())

        assert result.stage is Stage.INSTALLING
        assert result.outcomes == [outcome]
        assert not (project_dir / "main.ml").exists()

    def test_malformed_configuration(self, driver, project_dir, installer):
        (project_dir / "www.conf").write_text("[main]\nmain = Dispatch.main\n")

        result = driver.configure(ModeFlags())

        assert result.stage is Stage.INSTALLING
        assert isinstance(result.error, ConfigParseError)
        installer.ensure_installed.assert_not_called()


    def test_interrupt_without_running_process_fails(self, driver, project_dir, runner):
        runner.token.cancel()

        result = driver.configure(ModeFlags(), no_install=True)

        assert not result.success
        assert isinstance(result.error, OperationInterruptedError)
        assert not (project_dir / "main.ml").exists()

    def test_interrupt_during_install(self, driver, project_dir, runner, installer):
        installer.ensure_installed.side_effect = lambda *args, **kwargs: runner.token.cancel()

        result = driver.configure(ModeFlags())

        assert result.stage is Stage.INSTALLING
        assert isinstance(result.error, OperationInterruptedError)
        assert not (project_dir / "main.ml").exists()


class TestBuild:
    def test_build_before_configure(self, driver, runner):
        result = driver.build(ModeFlags())

        assert result.stage is Stage.EXECUTING
        assert isinstance(result.error, NotConfiguredError)
        runner.run.assert_not_called()

    def test_build_after_configure(self, driver, runner):
        driver.configure(ModeFlags(socket=True))

        result = driver.build(ModeFlags(socket=True))

        assert result.success
        assert [o.argv for o in result.outcomes] == [["obuild", "configure"], ["obuild", "build"]]

    def test_build_for_other_mode(self, driver):
        driver.configure(ModeFlags())

        result = driver.build(ModeFlags(xen=True))

        assert isinstance(result.error, NotConfiguredError)

    def test_build_never_installs(self, driver, installer):
        driver.configure(ModeFlags())
        installer.reset_mock()

        driver.build(ModeFlags())

        installer.ensure_installed.assert_not_called()

    def test_toolchain_failure(self, driver, runner):
        driver.configure(ModeFlags())
        runner.run.side_effect = lambda invocation, allow_interrupt=True: CommandOutcome(
            argv=list(invocation.argv), returncode=2
        )

        result = driver.build(ModeFlags())

        assert result.stage is Stage.EXECUTING
        assert isinstance(result.error, ExecutionError)
        assert result.outcomes[0].returncode == 2


class TestRun:
    def test_run_before_build(self, driver):
        driver.configure(ModeFlags())

        result = driver.run(ModeFlags())

        assert isinstance(result.error, NotConfiguredError)
        assert "mirari build" in result.message

    def test_interrupted_run(self, driver, project_dir, runner):
        driver.configure(ModeFlags(xen=True))
        (project_dir / "mir-www.xen").write_text("")
        runner.run.side_effect = lambda invocation, allow_interrupt=True: CommandOutcome(
            argv=list(invocation.argv), returncode=-15, interrupted=True
        )

        result = driver.run(ModeFlags(xen=True))

        assert not result.success
        assert result.stage is Stage.EXECUTING
        assert isinstance(result.error, OperationInterruptedError)
        assert result.outcomes[0].interrupted


class TestClean:
    def test_clean_without_project(self, tmp_path, runner):
        result = BuildDriver(runner=runner, search_dir=tmp_path).clean()

        assert result.success
        assert result.removed == []

    def test_clean_after_configure(self, driver, project_dir):
        driver.configure(ModeFlags(xen=True))

        result = driver.clean()

        assert result.success
        assert sorted(p.name for p in project_dir.iterdir()) == ["www.conf"]

    def test_clean_is_idempotent(self, driver):
        driver.configure(ModeFlags())

        assert driver.clean().removed
        second = driver.clean()
        assert second.success
        assert second.removed == []

    def test_clean_keeps_files_of_other_projects(self, driver, project_dir):
        driver.configure(ModeFlags(xen=True))
        (project_dir / "mir-www.xen").write_text("")
        (project_dir / "router.xl").write_text('name = "router"\n')
        (project_dir / "router.obuild").write_text("name: router\n")
        (project_dir / "mir-notes.txt").write_text("notes\n")

        result = driver.clean()

        assert result.success
        assert result.project.path == project_dir / "www.conf"
        assert sorted(p.name for p in project_dir.iterdir()) == [
            "mir-notes.txt",
            "router.obuild",
            "router.xl",
            "www.conf",
        ]

    def test_clean_without_single_project_removes_only_generated_files(self, driver, project_dir):
        driver.configure(ModeFlags(xen=True))
        (project_dir / "other.conf").write_text("[main]\nname = other\n")
        (project_dir / "router.xl").write_text('name = "router"\n')

        result = driver.clean()

        assert result.success
        assert result.project is None
        assert sorted(p.name for p in project_dir.iterdir()) == [
            "other.conf",
            "router.xl",
            "www.conf",
            "www.obuild",
        ]
