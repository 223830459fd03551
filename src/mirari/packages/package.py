"""Abstract base class for package managers.

The Dependency Installer only needs two operations from a package
manager, so alternative managers (or test doubles) implement this
interface.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Set

from ..runner import CommandOutcome


class IPackageManager(ABC):
    """Interface for package managers."""

    @abstractmethod
    def list_installed(self) -> Set[str]:
        """Get names of all installed packages.

        Raises:
            InstallError: If the package manager cannot be queried
            OperationInterruptedError: If the query was interrupted
        """
        pass

    @abstractmethod
    def install(self, names: Iterable[str]) -> CommandOutcome:
        """Install the given packages.

        Returns:
            CommandOutcome of the package manager invocation
        """
        pass
