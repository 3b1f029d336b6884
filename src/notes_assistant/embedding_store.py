"""Nearest-neighbor ranking over note blocks.

The embedding store is owned by the host application; this module defines the
contract the retrieval code relies on, including the ordering guarantees of the
neighbor lookups, and an in-memory reference implementation over precomputed
block vectors.

Ordering contract:

* ``rank``: descending aggregate score, at most ``max_hits`` results.
* ``neighbors_prev``: same-note blocks above the given one, nearest line first.
* ``neighbors_next``: same-note blocks below the given one, nearest line first.
* ``neighbors_nearest``: blocks of any note by descending similarity, never the
  given block itself. Ties keep store order.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Optional, Sequence

import numpy as np

from .project_types import Block, RankedNote, RankingConfig


class EmbeddingStore(ABC):
    """Contract of the note embedding store."""

    @abstractmethod
    def rank(self, query_vector: np.ndarray, candidates: Sequence[Block], config: RankingConfig,
             exclude_note_id: Optional[str] = None, group_by_note: bool = True) -> list[RankedNote]:
        """Rank candidate blocks against a query vector.

        With ``group_by_note`` the result holds one entry per note, scored by
        ``config.agg_method``. Without it, the result is a single entry holding
        the top blocks across all notes (the form used to build chat context),
        or an empty list if no block qualifies.
        """
        pass

    @abstractmethod
    def neighbors_prev(self, block: Block, k: int) -> list[Block]:
        pass

    @abstractmethod
    def neighbors_next(self, block: Block, k: int) -> list[Block]:
        pass

    @abstractmethod
    def neighbors_nearest(self, block: Block, k: int) -> list[Block]:
        pass


def _normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=-1, keepdims=True) + 1e-12
    return vectors / norms


class InMemoryEmbeddingStore(EmbeddingStore):
    """Cosine-similarity store over blocks and their precomputed vectors."""

    def __init__(self, blocks: Sequence[Block], vectors):
        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[0] != len(blocks):
            raise ValueError(f"Expected {len(blocks)} vectors, got an array of shape {matrix.shape}")
        self.blocks = list(blocks)
        self._matrix = _normalize(matrix)
        self._rows = {block.key: i for i, block in enumerate(self.blocks)}
        if len(self._rows) != len(self.blocks):
            raise ValueError("Block keys (note_id, line) must be unique")
        self._note_rows: dict[str, list[int]] = defaultdict(list)
        for i, block in enumerate(self.blocks):
            self._note_rows[block.note_id].append(i)
        for rows in self._note_rows.values():
            rows.sort(key=lambda i: self.blocks[i].line)

    def _similarities(self, vector: np.ndarray, rows: list[int]) -> np.ndarray:
        query = _normalize(np.asarray(vector, dtype=np.float32))
        return self._matrix[rows] @ query

    def rank(self, query_vector, candidates, config, exclude_note_id=None, group_by_note=True):
        rows = [self._rows[block.key] for block in candidates
                if block.key in self._rows
                and block.note_id != exclude_note_id
                and len(block.text) >= config.min_length
                and (block.folder_id is None or block.folder_id not in config.exclude_folders)]
        if not rows or np.asarray(query_vector).size == 0:
            return []
        sims = self._similarities(query_vector, rows)
        scored = [self.blocks[row].model_copy(update={'score': float(sim)})
                  for row, sim in zip(rows, sims) if sim >= config.min_similarity]
        scored.sort(key=lambda b: b.score, reverse=True)
        if not scored:
            return []

        if not group_by_note:
            top = scored[:config.max_hits]
            return [RankedNote(note_id=exclude_note_id or '', title='', score=top[0].score, blocks=top)]

        by_note: dict[str, list[Block]] = defaultdict(list)
        for block in scored:
            by_note[block.note_id].append(block)
        notes = []
        for note_id, blocks in by_note.items():
            scores = [b.score for b in blocks]
            score = max(scores) if config.agg_method == 'max' else float(np.mean(scores))
            notes.append(RankedNote(note_id=note_id, title=blocks[0].title, score=score, blocks=blocks))
        notes.sort(key=lambda n: n.score, reverse=True)
        return notes[:config.max_hits]

    def neighbors_prev(self, block, k):
        if k <= 0:
            return []
        above = [self.blocks[i] for i in self._note_rows.get(block.note_id, [])
                 if self.blocks[i].line < block.line]
        return list(reversed(above))[:k]

    def neighbors_next(self, block, k):
        if k <= 0:
            return []
        below = [self.blocks[i] for i in self._note_rows.get(block.note_id, [])
                 if self.blocks[i].line > block.line]
        return below[:k]

    def neighbors_nearest(self, block, k):
        row = self._rows.get(block.key)
        if k <= 0 or row is None:
            return []
        others = [i for i in range(len(self.blocks)) if i != row]
        if not others:
            return []
        sims = self._similarities(self._matrix[row], others)
        order = np.argsort(-sims, kind='stable')[:k]
        return [self.blocks[others[j]].model_copy(update={'score': float(sims[j])}) for j in order]
