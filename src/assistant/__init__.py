"""Completion backend client."""

from src.assistant.client import (
    ReplyGenerator,
    ReplyResult,
    SingleShotReply,
    StreamedReply,
)

__all__ = [
    "ReplyGenerator",
    "ReplyResult",
    "SingleShotReply",
    "StreamedReply",
]
