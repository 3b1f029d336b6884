"""Chat transcripts rendered into a note.

A transcript is plain text in which every turn opens with a role marker at the
start of a line (``User:`` or ``Assistant:`` by default). Text before the first
marker is a preamble: when the transcript has no markers at all, the whole text
is a single user turn.
"""

from dataclasses import dataclass, field
from typing import NamedTuple, Optional

from llama_index.core.llms import ChatMessage, MessageRole

from . import constants


class ChatFormat(NamedTuple):
    user_prefix: str = constants.DEFAULT_USER_PREFIX
    assistant_prefix: str = constants.DEFAULT_ASSISTANT_PREFIX

    def marker_role(self, line: str) -> Optional[MessageRole]:
        """Role opened by this line, or None if the line continues the current turn."""
        if line.startswith(self.user_prefix):
            return MessageRole.USER
        if line.startswith(self.assistant_prefix):
            return MessageRole.ASSISTANT
        return None


@dataclass
class Turn:
    role: MessageRole
    lines: list[str] = field(default_factory=list)  # raw lines, newlines kept, marker line first
    has_marker: bool = False

    @property
    def text(self) -> str:
        return ''.join(self.lines)

    def content(self, fmt: ChatFormat) -> str:
        """Text of the turn without its role marker."""
        text = self.text
        if self.has_marker:
            prefix = fmt.user_prefix if self.role == MessageRole.USER else fmt.assistant_prefix
            text = text[len(prefix):]
        return text.strip()


def split_turns(text: str, fmt: ChatFormat = ChatFormat()) -> list[Turn]:
    """Split a transcript into turns. Concatenating the lines of all turns gives
    back the original text."""
    turns: list[Turn] = []
    for line in text.splitlines(keepends=True):
        role = fmt.marker_role(line)
        if role is not None:
            turns.append(Turn(role=role, lines=[line], has_marker=True))
        elif turns:
            turns[-1].lines.append(line)
        else:
            turns.append(Turn(role=MessageRole.SYSTEM, lines=[line]))
    if len(turns) == 1 and not turns[0].has_marker:
        turns[0].role = MessageRole.USER
    return turns


def last_user_turn(turns: list[Turn]) -> Optional[Turn]:
    """The final turn if it was written by the user, else None."""
    if turns and turns[-1].role == MessageRole.USER:
        return turns[-1]
    return None


def to_chat_messages(text: str, fmt: ChatFormat = ChatFormat(),
                     system_prompt: str = constants.DEFAULT_SYSTEM_PROMPT) -> list[ChatMessage]:
    """Convert a transcript into provider messages. The first message is always
    the system message; a preamble is folded into it."""
    system = system_prompt
    messages: list[ChatMessage] = []
    for turn in split_turns(text, fmt):
        content = turn.content(fmt)
        if not content:
            continue
        if turn.role == MessageRole.SYSTEM:
            system = f"{system}\n\n{content}" if system else content
        else:
            messages.append(ChatMessage(role=turn.role, content=content))
    return [ChatMessage(role=MessageRole.SYSTEM, content=system)] + messages
