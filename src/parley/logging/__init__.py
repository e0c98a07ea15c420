"""
Conversation logging for Parley.

Provides JSONL logging of each request's turn-loop for debugging and analysis.
"""

from parley.logging.conversation_logger import ConversationLogger

__all__ = ["ConversationLogger"]
