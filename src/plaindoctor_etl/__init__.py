"""PlainDoctor: NPPES provider registry build pipeline.

This package turns the NPPES dissemination extract and the NUCC taxonomy
table into a normalized SQLite store with precomputed summary tables, and
re-exports that store as chunked SQL seed files and a compact JSON summary
for the serving tier.
"""

__version__ = "0.1.0"
__author__ = "PlainDoctor Team"

from .core.pipeline import BuildPipeline
from .core.config import Config

__all__ = ["BuildPipeline", "Config"]
