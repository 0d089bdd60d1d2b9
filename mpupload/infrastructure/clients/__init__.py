"""
HTTP clients for the multipart upload backend.
"""

from .base import RequestMetrics, run_cancellable
from .broker import PresignedUrlBroker, parse_part_urls
from .xml import build_completion_xml, ensure_quoted, parse_complete_result, parse_initiate_result

__all__ = [
    "RequestMetrics",
    "run_cancellable",
    "PresignedUrlBroker",
    "parse_part_urls",
    "build_completion_xml",
    "ensure_quoted",
    "parse_complete_result",
    "parse_initiate_result",
]
