#!/usr/bin/env python3
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

"""Fetch and configure the pulseaudio sources, keeping the internal headers.

This installs all the pulseaudio build dependencies on the machine. If this isn't
acceptable, run it in a schroot (or similar) wrapper.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import apt, harvest
from .errors import BuildDirectoryNotFoundError, Error
from .release import OsRelease
from .sources import DEFAULT_COMPONENTS, RepositoryStore, enable_universe, synthesize_sources

logger = logging.getLogger(__name__)

PACKAGE = "pulseaudio"
DEFAULT_TARGET = "~/pulseaudio.src"
STALE_PACKAGES = "libunwind-*-dev"


def _parse_args(argv: Optional[List[str]]):
    parser = argparse.ArgumentParser(
        description="Fetch and configure the pulseaudio sources, keeping the internal headers."
    )
    parser.add_argument(
        "-d",
        dest="directory",
        nargs="?",
        default=DEFAULT_TARGET,
        const=None,
        help=f"directory to write the headers to (default: {DEFAULT_TARGET})",
    )
    parser.add_argument("--apt-dir", default=RepositoryStore._apt_dir)
    parser.add_argument("--debug", action="store_true")
    return parser.parse_known_args(argv)


def _setup_logging(debug: bool) -> None:
    package_logger = logging.getLogger(__package__)
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if package_logger.handlers:
        return
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    console_handler.setLevel(logging.DEBUG)
    package_logger.addHandler(console_handler)


def prepare_sources(os_release: OsRelease, store: RepositoryStore) -> None:
    """Make source packages for the running release available to apt."""
    release = os_release.context
    components = DEFAULT_COMPONENTS
    if os_release.distributor == "Ubuntu":
        # Don't use add-apt-repository, it has a huge number of dependencies
        enable_universe(store, release)
        components = (*DEFAULT_COMPONENTS, "universe")
    synthesize_sources(release, store, components)
    apt.update()


def install_build_dependencies(os_release: OsRelease) -> None:
    """Install everything needed to configure the pulseaudio sources."""
    # An incompatible libunwind-*-dev blocks installing the default libunwind-dev
    stale = apt.installed_packages(STALE_PACKAGES)
    if stale:
        apt.remove_package(stale)
    apt.build_dep(PACKAGE)
    extras = apt.release_extra_packages(os_release)
    if extras:
        apt.add_package(extras)


def harvest_headers(target: Path) -> Path:
    """Fetch, configure and strip the pulseaudio sources into `target`."""
    parent = target.parent
    apt.fetch_source(PACKAGE, cwd=str(parent))
    build_dir = harvest.find_build_dir(parent, PACKAGE)
    harvest.configure(build_dir)
    harvest.strip_to_headers(build_dir)
    return harvest.install_tree(build_dir, target)


def run(target: Path, store: RepositoryStore) -> None:
    """Produce the pulseaudio headers in `target` unless it already exists."""
    if target.is_dir():
        logger.info("%s already exists, nothing to do", target)
        return
    os_release = OsRelease.from_system()
    logger.info("Building for : %s (%s)", os_release.label, os_release.codename)
    prepare_sources(os_release, store)
    install_build_dependencies(os_release)
    harvest_headers(target)
    logger.info("pulseaudio headers are in %s", target)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line tool and return its exit status."""
    args, unknown = _parse_args(argv)
    _setup_logging(args.debug)
    for arg in unknown:
        logger.warning("Unrecognised argument '%s'", arg)
    if args.directory is None:
        logger.warning("-d needs an argument")
        args.directory = DEFAULT_TARGET

    target = Path(args.directory).expanduser().absolute()
    try:
        run(target, RepositoryStore(args.apt_dir))
    except BuildDirectoryNotFoundError as e:
        logger.error("%s", e.message)
        return 1
    except Error as e:
        logger.error("%s: %s", type(e).__name__, e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
