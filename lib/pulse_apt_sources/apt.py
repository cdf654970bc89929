# Copyright 2026 Canonical Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Wrappers around `apt-get` and `dpkg-query` for preparing a source package build.

To fetch the build dependencies and the source of a package:

```python
try:
    apt.update()
    apt.build_dep("pulseaudio")
    apt.fetch_source("pulseaudio", cwd="/home/user")
except PackageError as e:
    logger.error("could not fetch pulseaudio. Reason: %s", e.message)
```
"""

from __future__ import annotations

import fnmatch
import logging
import os
import subprocess
from subprocess import CalledProcessError

from .errors import PackageError
from .release import OsRelease

logger = logging.getLogger(__name__)

# Packages needed to build pulseaudio which its build dependencies miss on some releases.
# Keys are matched against `OsRelease.label`.
RELEASE_EXTRA_PACKAGES: dict[str, tuple[str, ...]] = {
    "Ubuntu-16.04": ("libjson-c-dev",),
    "Kali-2022*": ("doxygen",),
}
CODENAME_EXTRA_PACKAGES: dict[tuple[str, str], tuple[str, ...]] = {
    ("Debian-12", "bookworm"): ("doxygen",),
}


def _run(cmd: list[str], cwd: str | None = None) -> str:
    """Run a packaging command non-interactively and return its stdout.

    Raises:
      PackageError if the command exits non-zero or can't be started
    """
    env = os.environ.copy()
    env["DEBIAN_FRONTEND"] = "noninteractive"
    logger.debug("running %s", cmd)
    try:
        result = subprocess.run(cmd, capture_output=True, check=True, text=True, env=env, cwd=cwd)
    except CalledProcessError as e:
        logger.error("%s:\nstdout:\n%s\nstderr:\n%s", " ".join(cmd), e.stdout, e.stderr)
        raise PackageError(f"Could not run '{' '.join(cmd)}': {e.stderr}") from None
    except FileNotFoundError as e:
        raise PackageError(f"Could not run '{' '.join(cmd)}': {e}") from e
    return result.stdout


def _apt(
    command: str,
    package_names: str | list[str] | None = None,
    optargs: list[str] | None = None,
    cwd: str | None = None,
) -> None:
    """Wrap `apt-get` commands.

    Args:
      command: the command given to `apt-get`
      package_names: a package name or list of package names to operate on
      optargs: an (Optional) list of additional arguments
      cwd: directory to run `apt-get` in

    Raises:
      PackageError if an error is encountered
    """
    optargs = optargs if optargs is not None else []
    if package_names is None:
        package_names = []
    elif isinstance(package_names, str):
        package_names = [package_names]
    _run(["apt-get", "-y", *optargs, command, *package_names], cwd=cwd)


def update() -> None:
    """Update the apt cache via `apt-get update`."""
    logger.info("updating the apt cache")
    _apt("update")


def add_package(package_names: str | list[str]) -> None:
    """Install one or more packages."""
    logger.info("installing %s", package_names)
    _apt("install", package_names, optargs=["--option=Dpkg::Options::=--force-confold"])


def remove_package(package_names: str | list[str]) -> None:
    """Remove one or more packages."""
    logger.info("removing %s", package_names)
    _apt("remove", package_names)


def build_dep(package: str) -> None:
    """Install the build dependencies of a source package."""
    logger.info("installing build dependencies of %s", package)
    _apt("build-dep", package)


def fetch_source(package: str, cwd: str) -> None:
    """Download and unpack a source package into `cwd`."""
    logger.info("fetching source package %s into %s", package, cwd)
    _apt("source", package, cwd=cwd)


def installed_packages(pattern: str) -> list[str]:
    """Return the names of installed packages matching a `dpkg-query` pattern.

    No match is reported by `dpkg-query` as an error, in which case the list is empty.
    """
    try:
        output = _run(["dpkg-query", "-W", "-f", "${Package} ", pattern])
    except PackageError:
        logger.debug("no installed packages match '%s'", pattern)
        return []
    return output.split()


def release_extra_packages(os_release: OsRelease) -> list[str]:
    """Return the packages to install on top of the build dependencies for a release."""
    packages: list[str] = []
    for pattern, names in RELEASE_EXTRA_PACKAGES.items():
        if fnmatch.fnmatchcase(os_release.label, pattern):
            packages.extend(names)
    packages.extend(CODENAME_EXTRA_PACKAGES.get((os_release.label, os_release.codename), ()))
    return packages
