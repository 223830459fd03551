"""mirari - build, run and clean Mirage applications for Xen or UNIX."""

__version__ = "0.1.0"
