"""
Command-line interface for mirari.

This module provides the `mirari` CLI tool for configuring, building,
running and cleaning Mirage applications.
"""

import argparse
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from mirari import __version__
from mirari.cli_utils import BannerFormatter, ErrorFormatter, setup_logging
from mirari.driver import BuildDriver, CommandResult, ModeFlags
from mirari.errors import ModeConflictError, OperationInterruptedError
from mirari.interrupt_utils import sigint_cancels
from mirari.runner import CancellationToken, ProcessRunner

COMMAND_DOCS = {
    "configure": "Configure a Mirage application.",
    "build": "Build a Mirage application.",
    "run": "Run a Mirage application.",
    "clean": "Clean auto-generated files.",
    "help": "Display help about mirari and mirari commands.",
}

COMMAND_DESCRIPTIONS = {
    "configure": "Initialize a Mirage application: install missing opam packages "
    + "and generate the build files for the selected backend.",
    "build": "Build an already configured application.",
    "run": "Run a Mirage application on the selected backend. Ctrl+C stops the "
    + "running application (and destroys a Xen guest) before exiting.",
    "clean": "Clean files generated by mirari and obuild. Useful to implement "
    + "the clean target of a Makefile.",
    "help": "Prints help about mirari commands. Use 'mirari help topics' to get "
    + "the full list of help topics.",
}

FILE_HELP = (
    "Configuration file. If not specified, the current directory is scanned: "
    + "if exactly one file ending with .conf is found it is used; no file or "
    + "several files is an error."
)


@dataclass
class TargetArgs:
    """Arguments shared by configure, build and run."""

    unix: bool = False
    xen: bool = False
    socket: bool = False
    switch: Optional[str] = None
    file: Optional[str] = None
    verbose: bool = False

    @property
    def flags(self) -> ModeFlags:
        return ModeFlags(unix=self.unix, xen=self.xen, socket=self.socket, switch=self.switch)


@dataclass
class ConfigureArgs(TargetArgs):
    """Arguments for the configure command."""

    no_install: bool = False


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def _add_target_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--unix",
        action="store_true",
        help="Use the unix-direct backend. Do not use in conjunction with --xen.",
    )
    parser.add_argument(
        "--xen",
        action="store_true",
        help="Generate a Xen microkernel. Do not use in conjunction with --unix or --socket.",
    )
    parser.add_argument(
        "--socket",
        action="store_true",
        help="Use the networking socket backend. Do not use in conjunction with --xen.",
    )
    parser.add_argument(
        "--switch",
        metavar="SWITCH",
        default=None,
        help="Use SWITCH as the current compiler switch.",
    )
    parser.add_argument(
        "file",
        metavar="FILE",
        nargs="?",
        default=None,
        help=FILE_HELP,
    )
    _add_common_options(parser)


def create_parser() -> Tuple[argparse.ArgumentParser, Dict[str, argparse.ArgumentParser]]:
    """Build the argument parser.

    Returns:
        The top-level parser and the sub-parser of each command
    """
    parser = argparse.ArgumentParser(
        prog="mirari",
        description="Mirari is a Mirage application builder. It glues together a set of "
        + "libraries and configuration (e.g. network and storage) into a standalone "
        + "microkernel or UNIX binary.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mirari {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    commands: Dict[str, argparse.ArgumentParser] = {}

    for name in ("configure", "build", "run"):
        command_parser = subparsers.add_parser(
            name, help=COMMAND_DOCS[name], description=COMMAND_DESCRIPTIONS[name]
        )
        _add_target_options(command_parser)
        commands[name] = command_parser

    commands["configure"].add_argument(
        "--no-install",
        action="store_true",
        help="Do not auto-install opam packages.",
    )

    clean_parser = subparsers.add_parser(
        "clean", help=COMMAND_DOCS["clean"], description=COMMAND_DESCRIPTIONS["clean"]
    )
    _add_common_options(clean_parser)
    commands["clean"] = clean_parser

    help_parser = subparsers.add_parser(
        "help", help=COMMAND_DOCS["help"], description=COMMAND_DESCRIPTIONS["help"]
    )
    help_parser.add_argument(
        "topic",
        metavar="TOPIC",
        nargs="?",
        default=None,
        help="The topic to get help on.",
    )
    commands["help"] = help_parser

    return parser, commands


def print_usage() -> None:
    """Print the short usage overview shown when no command is given."""
    lines = [
        "usage: mirari [--version] [--help] <command> [<args>]",
        "",
        "The most commonly used mirari commands are:",
    ]
    for name in ("configure", "build", "run", "clean"):
        lines.append(f"    {name:<11} {COMMAND_DOCS[name]}")
    lines.append("")
    lines.append("See 'mirari help <command>' for more information on a specific command.")
    BannerFormatter.print_banner("\n".join(lines))


def report_result(
    result: CommandResult, commands: Dict[str, argparse.ArgumentParser], verbose: bool = False
) -> None:
    """Print a command result and exit with the matching status.

    A mode conflict shows the command's help, so the valid flag
    combinations are visible right away.
    """
    if result.success:
        ErrorFormatter.print_success(result.message)
        if verbose:
            print(f"Time: {result.elapsed:.2f}s")
        sys.exit(0)

    error = result.error
    if isinstance(error, ModeConflictError):
        commands[result.command].print_help()
        ErrorFormatter.print_error("Error: conflicting target modes", str(error))
        sys.exit(1)

    if isinstance(error, OperationInterruptedError):
        ErrorFormatter.print_warning(f"{result.command} interrupted")
        sys.exit(1)

    step = error.step if error is not None else result.stage.value
    ErrorFormatter.print_error(f"{result.command} failed during {step}", result.message)
    sys.exit(1)


def _create_driver() -> Tuple[BuildDriver, CancellationToken]:
    token = CancellationToken()
    return BuildDriver(runner=ProcessRunner(token)), token


def configure_command(args: ConfigureArgs, commands: Dict[str, argparse.ArgumentParser]) -> None:
    """Configure a Mirage application.

    Examples:
        mirari configure                  # Scan for a .conf file, unix-direct
        mirari configure --xen www.conf   # Configure www.conf for Xen
        mirari configure --no-install     # Do not call opam install
    """
    try:
        driver, token = _create_driver()
        with sigint_cancels(token):
            result = driver.configure(args.flags, file=args.file, no_install=args.no_install)
        report_result(result, commands, args.verbose)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def build_command(args: TargetArgs, commands: Dict[str, argparse.ArgumentParser]) -> None:
    """Build a configured Mirage application.

    Examples:
        mirari build
        mirari build --xen www.conf
    """
    try:
        driver, token = _create_driver()
        with sigint_cancels(token):
            result = driver.build(args.flags, file=args.file)
        report_result(result, commands, args.verbose)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def run_command(args: TargetArgs, commands: Dict[str, argparse.ArgumentParser]) -> None:
    """Run a built Mirage application.

    Examples:
        mirari run                        # Run as a UNIX process
        mirari run --xen                  # Boot the Xen kernel (Ctrl+C destroys it)
    """
    try:
        driver, token = _create_driver()
        with sigint_cancels(token):
            result = driver.run(args.flags, file=args.file)
        report_result(result, commands, args.verbose)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def clean_command(verbose: bool, commands: Dict[str, argparse.ArgumentParser]) -> None:
    try:
        driver, _token = _create_driver()
        report_result(driver.clean(), commands, verbose)
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, verbose)


def help_command(
    topic: Optional[str],
    parser: argparse.ArgumentParser,
    commands: Dict[str, argparse.ArgumentParser],
) -> None:
    """Show help for a command, or list the help topics."""
    if topic is None:
        parser.print_help()
        sys.exit(0)

    if topic == "topics":
        for name in commands:
            print(name)
        sys.exit(0)

    if topic in commands:
        commands[topic].print_help()
        sys.exit(0)

    topics = ", ".join(["topics"] + list(commands))
    ErrorFormatter.print_error("Error: unknown help topic", f"'{topic}' is not one of: {topics}")
    sys.exit(1)


def main(argv: Optional[List[str]] = None) -> None:
    """mirari - Mirage application builder."""
    parser, commands = create_parser()
    parsed_args = parser.parse_args(argv)

    setup_logging(getattr(parsed_args, "verbose", False))

    # If no command specified, show usage
    if not parsed_args.command:
        print_usage()
        sys.exit(0)

    if parsed_args.command == "configure":
        configure_args = ConfigureArgs(
            unix=parsed_args.unix,
            xen=parsed_args.xen,
            socket=parsed_args.socket,
            switch=parsed_args.switch,
            file=parsed_args.file,
            verbose=parsed_args.verbose,
            no_install=parsed_args.no_install,
        )
        configure_command(configure_args, commands)
    elif parsed_args.command in ("build", "run"):
        target_args = TargetArgs(
            unix=parsed_args.unix,
            xen=parsed_args.xen,
            socket=parsed_args.socket,
            switch=parsed_args.switch,
            file=parsed_args.file,
            verbose=parsed_args.verbose,
        )
        if parsed_args.command == "build":
            build_command(target_args, commands)
        else:
            run_command(target_args, commands)
    elif parsed_args.command == "clean":
        clean_command(parsed_args.verbose, commands)
    elif parsed_args.command == "help":
        help_command(parsed_args.topic, parser, commands)


if __name__ == "__main__":
    main()
