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

"""Identify the distribution release the host is running."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from subprocess import CalledProcessError, check_output

from .errors import ReleaseError
from .sources import ReleaseContext

logger = logging.getLogger(__name__)


def _lsb_release(flag: str) -> str:
    try:
        return check_output(["lsb_release", flag], universal_newlines=True).strip()
    except (CalledProcessError, FileNotFoundError) as e:
        raise ReleaseError(f"could not run 'lsb_release {flag}': {e}") from e


@dataclass(frozen=True)
class OsRelease:
    """Distributor, release number and codename as reported by `lsb_release`."""

    distributor: str
    release: str
    codename: str

    @classmethod
    def from_system(cls) -> OsRelease:
        """Query `lsb_release` for the running release.

        Raises:
          ReleaseError if `lsb_release` is missing or fails, or reports no codename
        """
        os_release = cls(_lsb_release("-si"), _lsb_release("-sr"), _lsb_release("-cs"))
        if not os_release.codename:
            raise ReleaseError(f"no codename reported for {os_release.label}")
        logger.debug("detected release %s", os_release)
        return os_release

    @property
    def label(self) -> str:
        """Distributor and release number, e.g. `Ubuntu-22.04`."""
        return f"{self.distributor}-{self.release}"

    @property
    def context(self) -> ReleaseContext:
        """The release context used to rewrite repository configuration."""
        return ReleaseContext(self.codename)
