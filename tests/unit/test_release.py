# Copyright 2026 Canonical Ltd.
# See LICENSE file for licensing details.

from subprocess import CalledProcessError
from unittest.mock import call, patch

import pytest
from pulse_apt_sources import release
from pulse_apt_sources.errors import ReleaseError
from pulse_apt_sources.sources import ReleaseContext


def lsb_release_side_effects(*args, **kwargs):
    return {"-si": "Ubuntu\n", "-sr": "22.04\n", "-cs": "jammy\n"}[args[0][1]]


@patch("pulse_apt_sources.release.check_output")
def test_from_system(mock_check_output):
    mock_check_output.side_effect = lsb_release_side_effects

    os_release = release.OsRelease.from_system()

    assert os_release == release.OsRelease("Ubuntu", "22.04", "jammy")
    assert os_release.label == "Ubuntu-22.04"
    assert os_release.context == ReleaseContext("jammy")
    mock_check_output.assert_has_calls(
        [
            call(["lsb_release", "-si"], universal_newlines=True),
            call(["lsb_release", "-sr"], universal_newlines=True),
            call(["lsb_release", "-cs"], universal_newlines=True),
        ]
    )


@patch("pulse_apt_sources.release.check_output")
def test_from_system_no_codename(mock_check_output):
    mock_check_output.side_effect = ["Debian\n", "n/a\n", "\n"]
    with pytest.raises(ReleaseError):
        release.OsRelease.from_system()


@pytest.mark.parametrize(
    "error",
    [CalledProcessError(1, ["lsb_release"]), FileNotFoundError(2, "No such file")],
)
@patch("pulse_apt_sources.release.check_output")
def test_from_system_lsb_release_fails(mock_check_output, error):
    mock_check_output.side_effect = error
    with pytest.raises(ReleaseError) as ctx:
        release.OsRelease.from_system()
    assert "lsb_release -si" in ctx.value.message
