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

"""Errors raised while preparing the host and harvesting the pulseaudio headers."""


class Error(Exception):
    """Base class of most errors raised by this package."""

    def __repr__(self):
        """Represent the Error."""
        return f"<{type(self).__module__}.{type(self).__name__} {self.args}>"

    @property
    def name(self):
        """Return a string representation of the model plus class."""
        return f"<{type(self).__module__}.{type(self).__name__}>"

    @property
    def message(self):
        """Return the message passed as an argument."""
        return self.args[0]


class ConfigurationReadError(Error):
    """Raised when an APT source file cannot be read."""


class ConfigurationWriteError(Error):
    """Raised when an APT source file cannot be written or removed."""


class ReleaseError(Error):
    """Raised when the running distribution release cannot be determined."""


class PackageError(Error):
    """Raised when there's an error running apt-get or dpkg-query."""


class BuildDirectoryNotFoundError(Error):
    """Raised when the unpacked source tree cannot be found after fetching it."""


class ConfigureError(Error):
    """Raised when the unpacked source tree cannot be configured."""
