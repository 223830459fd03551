"""Package management for mirari.

This module works out which opam packages an application needs and
installs the missing ones.
"""

from .installer import (
    MODE_PACKAGES,
    DependencyInstaller,
    InstallPlan,
    InstallResult,
    InstallStatus,
    plan_install,
    required_packages,
)
from .opam import OpamPackageManager
from .package import IPackageManager

__all__ = [
    "IPackageManager",
    "OpamPackageManager",
    "DependencyInstaller",
    "InstallPlan",
    "InstallResult",
    "InstallStatus",
    "MODE_PACKAGES",
    "plan_install",
    "required_packages",
]
