"""
LX Player - playback and lyric-sync engine for a streaming music client.
"""

__version__ = "0.1.0"
