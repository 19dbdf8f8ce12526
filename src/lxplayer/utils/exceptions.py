"""
Custom exceptions for the music player.

Defines the specific exceptions raised inside the player so that
callers can tell recoverable playback failures apart from bugs.
"""

class PlayerException(Exception):
    """
    Base exception for all player errors.

    Attributes:
        message (str): Detailed error message
        code (int): Optional error code
    """
    def __init__(self, message: str, code: int = None):
        self.message = message
        self.code = code
        super().__init__(self.message)

class ResolutionError(PlayerException):
    """
    Raised when no stream URL could be obtained for a song.

    Examples:
        >>> raise ResolutionError("No stream URL for song 1234")
    """
    pass

class OpenError(PlayerException):
    """
    Raised when the audio backend cannot open a file or stream.

    Examples:
        >>> raise OpenError("mpv failed to load /tmp/missing.mp3")
        >>> raise OpenError("Timed out opening stream", code=408)
    """
    pass

class SourceError(PlayerException):
    """Raised for HTTP or decoding failures while talking to a source."""
    pass

class ConfigError(PlayerException):
    """Raised when the configuration is missing required values."""
    pass
