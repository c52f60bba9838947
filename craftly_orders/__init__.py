"""Craftly order lifecycle and multi-seller settlement service."""

__version__ = "0.1.0"
