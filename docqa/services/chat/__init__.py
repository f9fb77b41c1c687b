from docqa.services.chat.access import DocumentAccessService, verify_token
from docqa.services.chat.conversation_logger import ConversationLogger, build_conversation_row
from docqa.services.chat.generation import ChatGenerator
from docqa.services.chat.moderation import ContentModerator, ModerationResult
from docqa.services.chat.pipeline import ChatPipeline
from docqa.services.chat.rate_limiter import InMemoryRateLimiter, RateLimitDecision, RateLimiter, RedisRateLimiter
from docqa.services.chat.turn import ChatTurn, Timings

__all__ = [
    "ChatGenerator",
    "ChatPipeline",
    "ChatTurn",
    "ContentModerator",
    "ConversationLogger",
    "DocumentAccessService",
    "InMemoryRateLimiter",
    "ModerationResult",
    "RateLimitDecision",
    "RateLimiter",
    "RedisRateLimiter",
    "Timings",
    "build_conversation_row",
    "verify_token",
]
