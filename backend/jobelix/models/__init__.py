from jobelix.models.bot_session import BotSession
from jobelix.models.common import ApiCallLog, ApiToken
from jobelix.models.user import User

__all__ = [
    "ApiCallLog",
    "ApiToken",
    "BotSession",
    "User",
]
