"""Anveshak: a tool-using chat assistant core for OpenAI-compatible endpoints."""

__version__ = "0.3.0"
