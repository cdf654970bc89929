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

"""Reduce an unpacked pulseaudio source tree to the headers needed to build modules.

Configuring the tree generates `config.h` (`./config.h` for autotools releases,
`./build/config.h` for meson releases); after that only the `.h` files below `src/` and
`build/` are kept.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Union

from .errors import BuildDirectoryNotFoundError, ConfigureError

logger = logging.getLogger(__name__)

KEEP_TOP_LEVEL = frozenset({"src", "build", "config.h"})


def find_build_dir(parent: Union[str, Path], package: str = "pulseaudio") -> Path:
    """Locate the directory `apt-get source` unpacked a package into.

    Raises:
      BuildDirectoryNotFoundError if there's no `<package>-<version>` directory in `parent`
    """
    parent = Path(parent)
    candidates = sorted(p for p in parent.glob(f"{package}-[0-9]*") if p.is_dir())
    if not candidates:
        found = ", ".join(sorted(p.name for p in parent.iterdir())) if parent.is_dir() else ""
        raise BuildDirectoryNotFoundError(f"Can't find build directory in {parent}: {found}")
    if len(candidates) > 1:
        logger.warning("found several build directories in %s, using %s", parent, candidates[0])
    return candidates[0]


def _check_call(cmd: List[str], cwd: Path) -> None:
    logger.info("running %s in %s", cmd, cwd)
    try:
        subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        logger.error("%s:\nstdout:\n%s\nstderr:\n%s", " ".join(cmd), e.stdout, e.stderr)
        raise ConfigureError(f"'{' '.join(cmd)}' failed in {cwd}") from e
    except FileNotFoundError as e:
        raise ConfigureError(f"could not run '{' '.join(cmd)}': {e}") from e


def configure(build_dir: Union[str, Path]) -> Path:
    """Configure the source tree so that `config.h` is generated.

    Returns:
      the path of the generated `config.h`

    Raises:
      ConfigureError if the tree uses neither autotools nor meson, or configuring fails
    """
    build_dir = Path(build_dir)
    configure_script = build_dir / "configure"
    if configure_script.is_file() and os.access(configure_script, os.X_OK):
        _check_call(["./configure"], build_dir)
        return build_dir / "config.h"
    if (build_dir / "meson.build").is_file():
        shutil.rmtree(build_dir / "build", ignore_errors=True)
        _check_call(["meson", "build"], build_dir)
        return build_dir / "build" / "config.h"
    raise ConfigureError(f"Unable to configure pulseaudio from files in {build_dir}")


def strip_to_headers(build_dir: Union[str, Path]) -> int:
    """Delete everything except headers below `src/`, `build/` and `config.h`.

    Returns:
      the number of files and top-level entries removed
    """
    build_dir = Path(build_dir)
    removed = 0
    for root, _dirs, files in os.walk(build_dir):
        for name in files:
            path = Path(root) / name
            if path.is_symlink() or path.suffix == ".h":
                continue
            path.unlink()
            removed += 1

    for entry in build_dir.iterdir():
        if entry.name in KEEP_TOP_LEVEL:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1

    logger.info("removed %d unnecessary entries from %s", removed, build_dir)
    return removed


def install_tree(build_dir: Union[str, Path], target: Union[str, Path]) -> Path:
    """Move the stripped tree to its final location."""
    logger.info("renaming %s as %s", build_dir, target)
    return Path(shutil.move(str(build_dir), str(target)))
