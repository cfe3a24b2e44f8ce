"""Conduit - one streaming contract over many LLM backends."""

__version__ = "0.1.0"
