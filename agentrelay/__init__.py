"""Relay replies from agent CLIs to messaging channels."""

__version__ = "0.1.0"
