"""Limi - short answers within a hard latency budget."""

from limi.app.runtime import SynthesisRuntime
from limi.config import Settings, get_settings

__version__ = "0.1.0"

__all__ = ["Settings", "SynthesisRuntime", "get_settings"]
