"""Expand ranked blocks with the blocks around and related to them.

Each ranked block is emitted together with up to ``prev`` preceding and ``next``
following blocks of the same note, and up to ``nearest`` globally similar
blocks. The preceding blocks are emitted top to bottom, so every expansion reads
in document order. A single set of ``(note_id, line)`` keys, shared by the whole
expansion, guarantees each block is emitted at most once.

A ranked block that an earlier expansion already emitted is skipped entirely,
including its own neighbors. This favors long runs of context over complete
coverage of every ranked block's window.
"""

import logging
from typing import Iterable, Sequence

from .embedding_store import EmbeddingStore
from .project_types import AttachmentCounts, Block, RankedNote

logger = logging.getLogger(__name__)


def attach_blocks(ranked_blocks: Sequence[Block], store: EmbeddingStore,
                  counts: AttachmentCounts) -> list[Block]:
    """Return the flattened, deduplicated context sequence for the ranked blocks."""
    attached: set[tuple[str, int]] = set()
    result: list[Block] = []

    def emit(blocks: Iterable[Block]):
        for block in blocks:
            if block.key in attached:
                continue
            attached.add(block.key)
            result.append(block)

    for block in ranked_blocks:
        if block.key in attached:
            continue
        if counts.prev > 0:
            # the store returns nearest first; emit farthest first
            emit(reversed(store.neighbors_prev(block, counts.prev)))
        attached.add(block.key)
        result.append(block)
        if counts.next > 0:
            emit(store.neighbors_next(block, counts.next))
        if counts.nearest > 0:
            emit(store.neighbors_nearest(block, counts.nearest))

    logger.debug(f"Expanded {len(ranked_blocks)} ranked blocks into {len(result)} context blocks")
    return result


def expand_top_note(ranked_notes: list[RankedNote], store: EmbeddingStore,
                    counts: AttachmentCounts) -> list[RankedNote]:
    """Replace the blocks of the top-ranked note with their expansion, in place."""
    if ranked_notes:
        top = ranked_notes[0]
        top.blocks = attach_blocks(top.blocks, store, counts)
    return ranked_notes
