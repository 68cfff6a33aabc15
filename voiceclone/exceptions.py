"""
Custom exceptions for voiceclone, providing a structured error hierarchy.
"""


class VoiceCloneError(Exception):
    """Base exception for all custom exceptions in this package."""

    pass


class ConfigurationError(VoiceCloneError):
    """Raised for invalid configuration values, like a non-positive hop length."""

    pass
