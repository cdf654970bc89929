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

"""Enable source package repositories for the running release.

`apt-get source` and `apt-get build-dep` only work if the system's repository configuration
contains `deb-src` entries for the release being built on. This module rewrites the APT
configuration under `/etc/apt` so that it does, in three ordered stages:

1. one-line-style `.list` files are scanned and every `deb` entry for the release's suites
   (`<codename>`, `<codename>-updates`, `<codename>-security`) is emitted twice, once as
   `deb` and once as `deb-src`.
2. the emitted lines are sorted, de-duplicated and written to `/etc/apt/sources.list`, which
   replaces every other `.list` file that was scanned.
3. deb822-style `.sources` files that mention the release's codename in a `Suites` field have
   their `Types: deb` lines changed to `Types: deb deb-src`.

Typical usage:

```python
release = sources.ReleaseContext("jammy")
result = sources.synthesize_sources(release)
if result.canonical_written or result.activated_files:
    apt.update()
```

The host configuration is accessed through a `RepositoryStore`, which can be pointed at any
directory laid out like `/etc/apt`.
"""

from __future__ import annotations

import dataclasses
import glob
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Collection, Iterable, Iterator, Mapping, Sequence

from .errors import ConfigurationReadError, ConfigurationWriteError

logger = logging.getLogger(__name__)

VALID_SOURCE_TYPES = ("deb", "deb-src")
OPTIONS_MATCHER = re.compile(r"\[.*?\]")
TYPES_DEB_MATCHER = re.compile(r"^Types:([ \t]*)deb([ \t]*)$")
DEFAULT_COMPONENTS = ("main",)
SOURCE_FILE_MODE = 0o644


@dataclass(frozen=True)
class ReleaseContext:
    """The distribution release whose repositories should gain source entries."""

    codename: str

    @property
    def suite_names(self) -> frozenset[str]:
        """Suites that belong to this release."""
        return frozenset(
            (self.codename, f"{self.codename}-updates", f"{self.codename}-security")
        )


@dataclass(frozen=True)
class RepositoryEntry:
    """A single entry from a one-line-style sources file.

    `options` holds the content of a `[key=value ...]` block, without the brackets.
    """

    repotype: str
    uri: str
    suite: str
    components: tuple[str, ...] = ()
    options: str = ""

    @classmethod
    def from_line(cls, line: str) -> RepositoryEntry | None:
        """Parse a line in a sources.list file.

        Args:
          line: a single line read from a one-line-style sources file

        Returns:
          a `RepositoryEntry`, or None for blank lines, comments and lines which
          don't describe a `deb` or `deb-src` repository
        """
        source = line.strip()
        if not source or source.startswith("#"):
            return None

        # Treat anything after a "#" as a comment
        source, _, _comment = source.partition("#")

        options = ""
        match = OPTIONS_MATCHER.search(source)
        if match is not None:
            options = match.group(0).strip("[]").strip()
            source = OPTIONS_MATCHER.sub("", source)

        chunks = source.split()
        if len(chunks) < 3 or chunks[0] not in VALID_SOURCE_TYPES:
            return None

        repotype, uri, suite, *components = chunks
        return cls(repotype, uri, suite, tuple(components), options)

    def to_line(self, repotype: str | None = None) -> str:
        """Return the one-line-style definition of this entry.

        Args:
          repotype: render the entry with this type instead of its own
        """
        options = f"[{self.options}] " if self.options else ""
        parts = [repotype or self.repotype, f"{options}{self.uri}", self.suite, *self.components]
        return " ".join(parts)


class Deb822Stanza:
    """Representation of a stanza from a deb822 source file.

    Only the `Types` and `Suites` fields are interpreted. Field names are matched
    case-insensitively.
    """

    def __init__(self, numbered_lines: list[tuple[int, str]], filename: str = ""):
        self.filename = filename
        self.numbered_lines = numbered_lines
        self._options = _deb822_stanza_to_options(numbered_lines)

    def __repr__(self):
        """Represent the stanza."""
        return f"<{type(self).__name__}: {self.filename}:{self.first_line} {self._options}>"

    @property
    def first_line(self) -> int | None:
        """Line number the stanza starts on, 1 indexed."""
        return self.numbered_lines[0][0] if self.numbered_lines else None

    @property
    def types(self) -> tuple[str, ...]:
        """Repository types enabled by this stanza."""
        return tuple(self._options.get("types", "").split())

    @property
    def suites(self) -> tuple[str, ...]:
        """Suites listed by this stanza."""
        return tuple(self._options.get("suites", "").split())

    def matches(self, release: ReleaseContext) -> bool:
        """Return whether the release codename is one of the stanza's suites."""
        return release.codename in self.suites


def _iter_deb822_stanzas(lines: Iterable[str]) -> Iterator[list[tuple[int, str]]]:
    """Given lines from a deb822 format file, yield a stanza of lines.

    Args:
        lines: an iterable of lines from a deb822 sources file

    Yields:
        lists of numbered lines (a tuple of line number and line) that make up
        a deb822 stanza, with comments stripped out (but accounted for in line numbering)
    """
    current_stanza: list[tuple[int, str]] = []
    for n, line in enumerate(lines, start=1):  # 1 indexed line numbers
        if not line.strip():  # blank lines separate stanzas
            if current_stanza:
                yield current_stanza
                current_stanza = []
            continue
        content, _delim, _comment = line.partition("#")
        if content.strip():  # skip (potentially indented) comment line
            current_stanza.append((n, content.rstrip()))  # preserve indent
    if current_stanza:
        yield current_stanza


def _deb822_stanza_to_options(lines: Iterable[tuple[int, str]]) -> dict[str, str]:
    """Turn numbered lines into a dict of lower-cased field names to values."""
    parts: dict[str, list[str]] = {}
    current = None
    for n, line in lines:
        if line[:1].isspace():  # continuation of previous key's value
            if current is None:
                logger.debug("ignoring continuation line %d without a field", n)
                continue
            parts[current].append(line.strip())
            continue
        raw_key, _, raw_value = line.partition(":")
        current = raw_key.strip().lower()
        parts[current] = [raw_value.strip()]
    return {k: "\n".join(v) for k, v in parts.items()}


class RepositoryStore:
    """Access to a directory laid out like `/etc/apt`.

    Every read and write of repository configuration goes through this class, so that
    failures are reported as `ConfigurationReadError` or `ConfigurationWriteError`.
    """

    _apt_dir = "/etc/apt"
    _sources_subdir = "sources.list.d"
    _default_list_name = "sources.list"

    def __init__(self, apt_dir: str | None = None):
        self.apt_dir = apt_dir if apt_dir is not None else self._apt_dir
        self.sources_dir = os.path.join(self.apt_dir, self._sources_subdir)
        self.default_list = os.path.join(self.apt_dir, self._default_list_name)

    def __repr__(self):
        """Represent the store."""
        return f"<{type(self).__name__}: {self.apt_dir}>"

    def _glob(self, directory: str, pattern: str) -> list[str]:
        return [
            path for path in glob.glob(os.path.join(directory, pattern)) if os.path.isfile(path)
        ]

    def list_files(self) -> list[str]:
        """Return the one-line-style source files, sorted by path."""
        return sorted(
            self._glob(self.apt_dir, "*.list") + self._glob(self.sources_dir, "*.list")
        )

    def sources_files(self) -> list[str]:
        """Return the deb822-style source files, sorted by path."""
        return sorted(self._glob(self.sources_dir, "*.sources"))

    def read_lines(self, path: str) -> list[str]:
        """Read a source file, keeping line endings.

        Raises:
          ConfigurationReadError if the file can't be read
        """
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.readlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationReadError(f"could not read apt source file '{path}': {e}") from e

    def write_text(self, path: str, content: str) -> None:
        """Replace the content of a source file.

        The content is written to a temporary file next to `path` which is then renamed
        over it, so `path` is either left untouched or fully rewritten. An existing file keeps
        its permissions; a new one is created with `SOURCE_FILE_MODE`.

        Raises:
          ConfigurationWriteError if the file can't be written
        """
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=os.path.dirname(path) or ".",
                prefix=f".{os.path.basename(path)}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if os.path.exists(path):
                shutil.copymode(path, tmp_path)
            else:
                os.chmod(tmp_path, SOURCE_FILE_MODE)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigurationWriteError(f"could not write apt source file '{path}': {e}") from e
        logger.debug("wrote apt source file %s", path)

    def append_text(self, path: str, content: str) -> None:
        """Append to a source file, keeping its existing content."""
        existing = "".join(self.read_lines(path))
        if existing and not existing.endswith("\n"):
            existing += "\n"
        self.write_text(path, existing + content)

    def remove(self, path: str) -> None:
        """Remove a source file.

        Raises:
          ConfigurationWriteError if the file can't be removed
        """
        try:
            os.remove(path)
        except OSError as e:
            raise ConfigurationWriteError(f"could not remove apt source file '{path}': {e}") from e
        logger.debug("removed apt source file %s", path)


def _is_release_entry(
    entry: RepositoryEntry, release: ReleaseContext, components: Collection[str]
) -> bool:
    return (
        entry.repotype == "deb"
        and bool(entry.components)
        and entry.components[-1] in components
        and entry.suite in release.suite_names
    )


def collect_legacy_lines(
    store: RepositoryStore,
    paths: Sequence[str],
    release: ReleaseContext,
    components: Collection[str] = DEFAULT_COMPONENTS,
) -> list[str]:
    """Collect `deb` and `deb-src` lines for the release from one-line-style files.

    A line is used only if its type is `deb`, its last component is one of `components`
    and its suite belongs to the release. Each such line yields a `deb` line and a
    `deb-src` line with the same URI, suite and components.

    Args:
      store: where the files are read from
      paths: the one-line-style files to scan, in order
      release: the release to collect entries for
      components: accepted values for the last component of a line

    Returns:
      the synthesized lines, in the order they were found

    Raises:
      ConfigurationReadError if any of the files can't be read
    """
    if not paths:
        logger.info("no one-line-style apt source files found")
        return []

    lines: list[str] = []
    for path in paths:
        matched: list[int] = []
        for n, line in enumerate(store.read_lines(path), start=1):
            entry = RepositoryEntry.from_line(line)
            if entry is None:
                continue
            if not _is_release_entry(entry, release, components):
                logger.debug("skipping line %d in '%s': %s", n, path, line.strip())
                continue
            lines.append(entry.to_line("deb"))
            lines.append(entry.to_line("deb-src"))
            matched.append(n)
        logger.debug("matched %d line(s) for '%s' in '%s'", len(matched), release.codename, path)

    logger.info(
        "collected %d apt source line(s) for '%s' from %d file(s)",
        len(lines),
        release.codename,
        len(paths),
    )
    return lines


def compose_lines(lines: Iterable[str]) -> str:
    """Join lines into newline terminated file content, keeping their order."""
    return "".join(f"{line}\n" for line in lines)


def compose_canonical(lines: Iterable[str]) -> str:
    """Return the sorted, de-duplicated content of the combined sources file."""
    return compose_lines(sorted(set(lines)))


def merge_legacy_lines(store: RepositoryStore, paths: Sequence[str], lines: Sequence[str]) -> bool:
    """Replace the scanned one-line-style files with a single combined file.

    The combined file is written to `store.default_list` before any of `paths` is removed.

    Args:
      store: where the files are written
      paths: the one-line-style files that were scanned
      lines: the lines collected from them

    Returns:
      whether the combined file was written

    Raises:
      ConfigurationWriteError if the combined file can't be written or an original removed
    """
    if not lines:
        logger.info("no apt source lines to merge, leaving one-line-style files untouched")
        return False

    content = compose_canonical(lines)
    store.write_text(store.default_list, content)
    target = os.path.abspath(store.default_list)
    for path in paths:
        if os.path.abspath(path) != target:
            store.remove(path)

    logger.info(
        "merged %d apt source file(s) into %s (%d unique line(s))",
        len(paths),
        store.default_list,
        content.count("\n"),
    )
    return True


def _enable_source_types(line: str) -> str:
    """Turn a `Types: deb` line into `Types: deb deb-src`, keeping its line ending."""
    body = line.rstrip("\r\n")
    match = TYPES_DEB_MATCHER.match(body)
    if match is None:
        return line
    before, after = match.groups()
    return f"Types:{before}deb deb-src{after}{line[len(body):]}"


def plan_deb822_activation(
    store: RepositoryStore, paths: Sequence[str], release: ReleaseContext
) -> dict[str, str]:
    """Work out which deb822-style files need source fetching enabled.

    A file is selected if any of its stanzas lists the release codename in `Suites`; every
    `Types: deb` line of a selected file is then enabled, whichever stanza it belongs to.
    Files that would not change are left out.

    Returns:
      a mapping of paths to their new content

    Raises:
      ConfigurationReadError if any of the files can't be read
    """
    planned: dict[str, str] = {}
    for path in paths:
        lines = store.read_lines(path)
        stanzas = [Deb822Stanza(n, filename=path) for n in _iter_deb822_stanzas(lines)]
        if not any(stanza.matches(release) for stanza in stanzas):
            logger.debug("no stanza for '%s' in '%s'", release.codename, path)
            continue
        rewritten = [_enable_source_types(line) for line in lines]
        if rewritten == lines:
            logger.debug("source packages already enabled in '%s'", path)
            continue
        planned[path] = "".join(rewritten)
    return planned


def apply_deb822_activation(store: RepositoryStore, planned: Mapping[str, str]) -> list[str]:
    """Write the content produced by `plan_deb822_activation`.

    Returns:
      the paths which were rewritten
    """
    for path, content in planned.items():
        store.write_text(path, content)
        logger.info("enabled source packages in %s", path)
    if not planned:
        logger.info("no deb822 apt source files needed source packages enabled")
    return list(planned)


def activate_deb822_sources(
    store: RepositoryStore, paths: Sequence[str], release: ReleaseContext
) -> list[str]:
    """Enable `deb-src` in every deb822-style file that lists the release.

    Running this again on its own output changes nothing.

    Returns:
      the paths which were rewritten
    """
    return apply_deb822_activation(store, plan_deb822_activation(store, paths, release))


def enable_universe(store: RepositoryStore, release: ReleaseContext) -> list[str]:
    """Add `universe` mirrors of the release's `main` entries to the default sources file.

    Nothing is done if the default sources file is missing or already has an enabled
    entry with the `universe` component.

    Returns:
      the lines appended to the file
    """
    path = store.default_list
    if not os.path.isfile(path):
        logger.debug("no %s, not adding 'universe' repository", path)
        return []

    entries = [e for e in map(RepositoryEntry.from_line, store.read_lines(path)) if e is not None]
    if any("universe" in entry.components for entry in entries):
        logger.debug("'universe' repository already enabled in %s", path)
        return []

    added = [
        dataclasses.replace(entry, components=("universe",)).to_line()
        for entry in entries
        if entry.repotype == "deb"
        and entry.components == DEFAULT_COMPONENTS
        and entry.suite in release.suite_names
    ]
    if added:
        store.append_text(path, compose_lines(added))
        logger.info("added 'universe' repository to %s", path)
    return added


@dataclass
class SynthesisResult:
    """What `synthesize_sources` changed."""

    collected_lines: list[str] = field(default_factory=list)
    canonical_written: bool = False
    activated_files: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Whether any repository configuration was rewritten."""
        return self.canonical_written or bool(self.activated_files)


def synthesize_sources(
    release: ReleaseContext,
    store: RepositoryStore | None = None,
    components: Collection[str] = DEFAULT_COMPONENTS,
) -> SynthesisResult:
    """Add source package entries for the release to the APT configuration.

    All files are read before any of them is rewritten.

    Args:
      release: the release to enable source packages for
      store: the APT configuration, `/etc/apt` by default
      components: accepted values for the last component of one-line-style entries

    Raises:
      ConfigurationReadError if a source file can't be read; nothing has been changed
      ConfigurationWriteError if a source file can't be written
    """
    store = store if store is not None else RepositoryStore()
    logger.info("adding source repositories for '%s' in %s", release.codename, store.apt_dir)

    list_files = store.list_files()
    collected = collect_legacy_lines(store, list_files, release, components)
    planned = plan_deb822_activation(store, store.sources_files(), release)

    written = merge_legacy_lines(store, list_files, collected)
    activated = apply_deb822_activation(store, planned)
    return SynthesisResult(collected, written, activated)
