"""Application runtime package."""

from limi.app.runtime import SynthesisRuntime

__all__ = ["SynthesisRuntime"]
