"""
Core interfaces defining the contracts between upload components.
"""

from .upload import IByteSource, IChunkSource, IPresignedUrlBroker, ProgressSink

__all__ = [
    "IByteSource",
    "IChunkSource",
    "IPresignedUrlBroker",
    "ProgressSink",
]
