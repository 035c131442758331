from coachbot.models.account import Account
from coachbot.models.email_link import EmailLink
from coachbot.models.usage_counter import UsageCounter
from coachbot.models.subject import Subject, SubjectMessage
from coachbot.models.memory_turn import MemoryTurn

__all__ = [
    "Account",
    "EmailLink",
    "UsageCounter",
    "Subject",
    "SubjectMessage",
    "MemoryTurn",
]
