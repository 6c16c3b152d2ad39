"""Command-line entry point for the yum security updater."""

from importlib.metadata import version as get_package_version

__version__ = get_package_version("yum-secupdater")
