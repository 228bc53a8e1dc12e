"""Provision a Logto tenant and link a GitHub identity to a password account."""

__version__ = "0.1.0"
