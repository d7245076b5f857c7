"""Grand Library: phase-driven documentation suite orchestrator."""

from grandlibrary.version import __version__

__all__ = ["__version__"]
