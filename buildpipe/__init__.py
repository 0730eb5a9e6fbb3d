"""buildpipe — build/test pipeline orchestrator with guaranteed reporting."""

__version__ = "0.1.0"
