# Copyright 2026 Canonical Ltd.
# See LICENSE file for licensing details.

import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import ANY, patch

from pulse_apt_sources import main
from pulse_apt_sources.errors import BuildDirectoryNotFoundError, PackageError
from pulse_apt_sources.release import OsRelease
from pulse_apt_sources.sources import ReleaseContext, RepositoryStore

SETUP_LOGGING = main._setup_logging


class TestMain(unittest.TestCase):
    def setUp(self) -> None:
        mocker_logging = patch.object(main, "_setup_logging")
        mocker_logging.start()
        self.addCleanup(mocker_logging.stop)

        mocker_run = patch.object(main, "run")
        self.run = mocker_run.start()
        self.addCleanup(mocker_run.stop)

    def test_directory_argument(self):
        self.assertEqual(main.main(["-d", "/srv/pulse"]), 0)
        self.run.assert_called_once_with(Path("/srv/pulse"), ANY)
        store = self.run.call_args.args[1]
        self.assertIsInstance(store, RepositoryStore)
        self.assertEqual(store.apt_dir, "/etc/apt")

    def test_apt_dir_argument(self):
        main.main(["-d", "/srv/pulse", "--apt-dir", "/srv/chroot/etc/apt"])
        store = self.run.call_args.args[1]
        self.assertEqual(store.default_list, "/srv/chroot/etc/apt/sources.list")

    def test_unrecognised_argument_warns(self):
        with patch.object(main.logger, "warning") as mock_warning:
            self.assertEqual(main.main(["--bogus", "-d", "/srv/pulse", "extra"]), 0)
        mock_warning.assert_any_call("Unrecognised argument '%s'", "--bogus")
        mock_warning.assert_any_call("Unrecognised argument '%s'", "extra")
        self.run.assert_called_once_with(Path("/srv/pulse"), ANY)

    def test_missing_directory_value(self):
        with patch.object(main.logger, "warning") as mock_warning:
            self.assertEqual(main.main(["-d"]), 0)
        mock_warning.assert_called_once_with("-d needs an argument")
        self.run.assert_called_once_with(Path(main.DEFAULT_TARGET).expanduser().absolute(), ANY)

    def test_build_dir_not_found(self):
        self.run.side_effect = BuildDirectoryNotFoundError("Can't find build directory in /srv")
        self.assertEqual(main.main(["-d", "/srv/pulse"]), 1)

    def test_logging_handler_added_once(self):
        package_logger = logging.getLogger("pulse_apt_sources")
        handlers = list(package_logger.handlers)
        self.addCleanup(setattr, package_logger, "handlers", handlers)
        package_logger.handlers = []

        with patch.object(main, "_setup_logging", wraps=SETUP_LOGGING):
            main.main(["-d", "/srv/pulse"])
            main.main(["-d", "/srv/pulse", "--debug"])

        self.assertEqual(len(package_logger.handlers), 1)
        self.assertEqual(package_logger.level, logging.DEBUG)

    def test_without_module_docstring(self):
        with patch.object(main, "__doc__", None):
            self.assertEqual(main.main(["-d", "/srv/pulse"]), 0)
        self.run.assert_called_once_with(Path("/srv/pulse"), ANY)

    def test_library_error(self):
        self.run.side_effect = PackageError("Could not run 'apt-get -y update'")
        with patch.object(main.logger, "error") as mock_error:
            self.assertEqual(main.main([]), 1)
        mock_error.assert_called_once_with(
            "%s: %s", "PackageError", "Could not run 'apt-get -y update'"
        )


class TestRun(unittest.TestCase):
    def setUp(self) -> None:
        tmp_dir = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(tmp_dir.name)
        self.addCleanup(tmp_dir.cleanup)
        self.target = self.tmp_dir / "pulseaudio.src"
        self.store = RepositoryStore(str(self.tmp_dir / "apt"))

        self.mocks = {}
        for name in ("enable_universe", "synthesize_sources", "apt", "harvest"):
            mocker = patch.object(main, name)
            self.mocks[name] = mocker.start()
            self.addCleanup(mocker.stop)
        self.mocks["apt"].installed_packages.return_value = []
        self.mocks["apt"].release_extra_packages.return_value = []
        self.mocks["harvest"].find_build_dir.return_value = self.tmp_dir / "pulseaudio-16.1"

        mocker_release = patch.object(main.OsRelease, "from_system")
        self.from_system = mocker_release.start()
        self.addCleanup(mocker_release.stop)

    def test_existing_target(self):
        self.target.mkdir()
        main.run(self.target, self.store)
        self.from_system.assert_not_called()
        self.mocks["apt"].update.assert_not_called()

    def test_ubuntu(self):
        self.from_system.return_value = OsRelease("Ubuntu", "22.04", "jammy")
        self.mocks["apt"].installed_packages.return_value = ["libunwind-14-dev"]

        main.run(self.target, self.store)

        self.mocks["enable_universe"].assert_called_once_with(self.store, ReleaseContext("jammy"))
        self.mocks["synthesize_sources"].assert_called_once_with(
            ReleaseContext("jammy"), self.store, ("main", "universe")
        )
        apt = self.mocks["apt"]
        apt.update.assert_called_once_with()
        apt.installed_packages.assert_called_once_with("libunwind-*-dev")
        apt.remove_package.assert_called_once_with(["libunwind-14-dev"])
        apt.build_dep.assert_called_once_with("pulseaudio")
        apt.add_package.assert_not_called()
        apt.fetch_source.assert_called_once_with("pulseaudio", cwd=str(self.tmp_dir))

        harvest = self.mocks["harvest"]
        build_dir = self.tmp_dir / "pulseaudio-16.1"
        harvest.find_build_dir.assert_called_once_with(self.tmp_dir, "pulseaudio")
        harvest.configure.assert_called_once_with(build_dir)
        harvest.strip_to_headers.assert_called_once_with(build_dir)
        harvest.install_tree.assert_called_once_with(build_dir, self.target)

    def test_debian(self):
        self.from_system.return_value = OsRelease("Debian", "12", "bookworm")
        self.mocks["apt"].release_extra_packages.return_value = ["doxygen"]

        main.run(self.target, self.store)

        self.mocks["enable_universe"].assert_not_called()
        self.mocks["synthesize_sources"].assert_called_once_with(
            ReleaseContext("bookworm"), self.store, ("main",)
        )
        self.mocks["apt"].remove_package.assert_not_called()
        self.mocks["apt"].add_package.assert_called_once_with(["doxygen"])

    def test_build_dir_missing_stops(self):
        self.from_system.return_value = OsRelease("Debian", "12", "bookworm")
        self.mocks["harvest"].find_build_dir.side_effect = BuildDirectoryNotFoundError("missing")

        with self.assertRaises(BuildDirectoryNotFoundError):
            main.run(self.target, self.store)
        self.mocks["harvest"].configure.assert_not_called()
