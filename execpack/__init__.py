"""execpack - package a compiled web application into a single executable.

This package discovers and validates static assets, drives a staged build
pipeline that embeds them into a compiled artifact, and serves that
artifact's requests at runtime with graceful shutdown.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
