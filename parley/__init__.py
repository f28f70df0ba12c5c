"""Parley — prompt input assembly for chat-style LLM APIs."""

__version__ = "0.4.0"
