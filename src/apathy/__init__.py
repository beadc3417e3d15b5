from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("apathy-task")
except PackageNotFoundError:
    __version__ = "unknown"
