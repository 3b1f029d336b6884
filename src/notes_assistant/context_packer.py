"""Pack an ordered list of blocks into a token budget."""

from abc import ABC, abstractmethod
from typing import Sequence

from . import constants
from .project_types import Block


def estimate_tokens(text: str) -> float:
    return len(text) / constants.CHARS_PER_TOKEN


def note_numbers(blocks: Sequence[Block]) -> dict[str, int]:
    """Number notes 1, 2, ... in order of first appearance."""
    numbers: dict[str, int] = {}
    for block in blocks:
        numbers.setdefault(block.note_id, len(numbers) + 1)
    return numbers


def format_note_links(blocks: Sequence[Block]) -> str:
    """The reference line appended to a reply, listing the notes that were used.
    It starts with the reference-notes prefix so the command parser removes it
    from later turns."""
    links = [f"[{number}](:/{note_id})" for note_id, number in note_numbers(blocks).items()]
    return f"{constants.REF_NOTES_PREFIX} {', '.join(links)}" if links else ''


class ContextPacker(ABC):

    @abstractmethod
    def pack(self, blocks: Sequence[Block], token_budget: int, search_hint: str = '') -> tuple[str, list[Block]]:
        """Return the packed text and the blocks it includes, in order. The text
        is empty when nothing fits."""
        pass


class GreedyContextPacker(ContextPacker):
    """Adds blocks in order while they fit, stopping at the first one that doesn't."""

    def pack(self, blocks, token_budget, search_hint=''):
        numbers = note_numbers(blocks)
        parts: list[str] = []
        included: list[Block] = []
        tokens = 0.0
        if search_hint:
            header = f"The notes below were selected by searching for: {search_hint}\n\n"
            tokens = estimate_tokens(header)
            if tokens > token_budget:
                return '', []
            parts.append(header)
        for block in blocks:
            entry = f"## [{numbers[block.note_id]}] {block.title}\n{block.text.strip()}\n\n"
            size = estimate_tokens(entry)
            if tokens + size > token_budget:
                break
            parts.append(entry)
            included.append(block)
            tokens += size
        if not included:
            return '', []
        return ''.join(parts), included
