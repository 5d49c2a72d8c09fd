"""Test package version and basic imports."""

import mondeploy


def test_version():
    """Verify package version is set."""
    assert mondeploy.__version__ == "0.1.0"


def test_package_imports():
    """Verify the CLI module can be imported."""
    from mondeploy.cli import cli

    assert cli is not None
