"""neuroevo — evolutionary search over neural coordination patterns."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("neuroevo")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
