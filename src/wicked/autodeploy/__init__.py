"""Provision a wicked application, subscription and Kubernetes secret."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wicked-autodeploy")
except PackageNotFoundError:
    __version__ = "0.0.0"
