"""idxprobe: find filtered columns that no index covers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("idxprobe")
except PackageNotFoundError:
    __version__ = "dev"
