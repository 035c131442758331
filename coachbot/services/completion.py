"""
Completion collaborator: ordered role-tagged turns + token budget in, text out.
The chat service only depends on the `CompletionFn` shape; the OpenAI client
below is the default implementation.
"""
import logging
import os
from typing import Callable, Dict, List, Optional

from openai import OpenAI

from coachbot.core.modes import Mode

logger = logging.getLogger(__name__)

CompletionFn = Callable[[List[Dict[str, str]], int], str]

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
COMPLETION_MAX_TOKENS = int(os.getenv("COMPLETION_MAX_TOKENS", "600"))

SYSTEM_PROMPT = os.getenv(
    "COACH_SYSTEM_PROMPT",
    "You are a grounded, direct coach. Keep answers short and practical.",
)

MODE_GUIDANCE = {
    Mode.GROUNDING: "Slow things down and bring attention back to the present.",
    Mode.DISCIPLINE: "Cut through excuses and point to one small, concrete action.",
    Mode.RELATIONSHIPS: "Focus on honesty, boundaries and listening.",
    Mode.BUSINESS: "Separate signal from noise and support clear decisions.",
    Mode.PURPOSE: "Zoom out to direction and what matters long term.",
}

_client: Optional[OpenAI] = None


def build_messages(
    history: List[Dict[str, str]],
    user_message: str,
    mode: Optional[Mode] = None,
    profile: Optional[Dict[str, str]] = None,
) -> List[Dict[str, str]]:
    system = SYSTEM_PROMPT
    if mode is not None:
        system += "\n\nCoaching mode: " + MODE_GUIDANCE.get(mode, mode.value)
    if profile:
        details = "\n".join(f"{key}: {value}" for key, value in profile.items() if value)
        if details:
            system += "\n\nWhat you know about the user:\n" + details
    messages = [{"role": "system", "content": system}]
    messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
    messages.append({"role": "user", "content": user_message})
    return messages


def get_openai_client() -> OpenAI:
    global _client
    if _client is None:
        if not os.getenv("OPENAI_API_KEY"):
            raise RuntimeError("OPENAI_API_KEY is not set")
        _client = OpenAI()
    return _client


def openai_complete(messages: List[Dict[str, str]], max_tokens: int = COMPLETION_MAX_TOKENS) -> str:
    response = get_openai_client().chat.completions.create(
        model=OPENAI_MODEL,
        messages=messages,
        max_tokens=max_tokens,
        temperature=0.7,
    )
    return response.choices[0].message.content or ""
