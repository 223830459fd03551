"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/mirage/mirari"
KEYWORDS = "mirage unikernel xen opam ocaml build orchestrator"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    with open(os.path.join(HERE, "src", "mirari", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("Unable to find __version__")


if __name__ == "__main__":
    setup(
        name="mirari",
        version=read_version(),
        description="Build, run and clean Mirage applications for Xen or UNIX",
        keywords=KEYWORDS,
        url=URL,
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        python_requires=">=3.9",
        install_requires=["psutil"],
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["mirari=mirari.cli:main"]},
        include_package_data=True)
