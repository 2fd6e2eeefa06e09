"""Profile-driven flattening of source trees into a single text artifact."""

__version__ = "0.1.0"
