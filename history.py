# history.py
"""Session history shaping.

Stored history is a JSON array of ``{role, content}``. Every chat turn loads
it (seeding a system prompt for new sessions), appends the user turn and trims
to the configured bound. The first system message is pinned to the front and
never evicted; the oldest non-system messages go first. Any further system
messages are dropped while trimming.
"""
import re
from typing import List, Optional

from models import Message, history_from_json

CONTEXT_TEMPLATE = (
    "Medical database context:\n{context}\n\n"
    "Respond as Baymax, using this data carefully."
)

_WHITESPACE = re.compile(r"\s+")


def sanitize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def load_history(raw: Optional[str], system_prompt: str) -> List[Message]:
    if not raw:
        return [Message(role="system", content=system_prompt)]
    return history_from_json(raw)


def trim_history(messages: List[Message], bound: int) -> List[Message]:
    system = next((m for m in messages if m.role == "system"), None)
    keep = max(bound - (1 if system else 0), 0)
    non_system = [m for m in messages if m.role != "system"]
    non_system = non_system[-keep:] if keep else []
    return [system, *non_system] if system else non_system


def build_turn(raw: Optional[str], user_message: str, system_prompt: str, bound: int) -> List[Message]:
    history = load_history(raw, system_prompt)
    history.append(Message(role="user", content=user_message))
    return trim_history(history, bound)


def record_reply(history: List[Message], reply: str, bound: int) -> List[Message]:
    # re-trim so the stored record stays within the bound too
    return trim_history([*history, Message(role="assistant", content=reply)], bound)


def with_context(history: List[Message], context: str) -> List[Message]:
    if not context:
        return list(history)
    lead = Message(role="system", content=CONTEXT_TEMPLATE.format(context=context))
    return [lead, *history]
