from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("mcpost")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
