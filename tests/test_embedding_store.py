"""Tests for the in-memory embedding store and its ordering guarantees."""

import numpy as np
import pytest

from notes_assistant.embedding_store import InMemoryEmbeddingStore
from notes_assistant.project_types import Block, RankingConfig

NOTE_N = "n" * 32
NOTE_M = "m" * 32
LONG_TEXT = "t" * 150


def make_block(note_id, line, text=LONG_TEXT):
    folder = "f1" if note_id == NOTE_N else "f2"
    return Block(note_id=note_id, line=line, title=f"Note {note_id[0]}", text=text, folder_id=folder)


@pytest.fixture
def store():
    """Note N has blocks at lines 0, 5, 10, 15, 20; note M at lines 0 and 3."""
    blocks = [
        make_block(NOTE_N, 0),
        make_block(NOTE_N, 5),
        make_block(NOTE_N, 10),
        make_block(NOTE_N, 15),
        make_block(NOTE_N, 20),
        make_block(NOTE_M, 0),
        make_block(NOTE_M, 3, text="short"),
    ]
    vectors = [
        [1.0, 0.0],
        [0.9, 0.1],
        [0.0, 1.0],
        [0.1, 0.9],
        [0.7, 0.7],
        [1.0, 0.05],
        [0.05, 1.0],
    ]
    return InMemoryEmbeddingStore(blocks, vectors)


def by_key(store, note_id, line):
    return next(b for b in store.blocks if b.key == (note_id, line))


class TestConstruction:

    def test_vector_count_mismatch(self):
        blocks = [make_block(NOTE_N, 0), make_block(NOTE_N, 1)]
        with pytest.raises(ValueError):
            InMemoryEmbeddingStore(blocks, [[1.0, 0.0]])

    def test_duplicate_keys(self):
        blocks = [make_block(NOTE_N, 0), make_block(NOTE_N, 0)]
        with pytest.raises(ValueError):
            InMemoryEmbeddingStore(blocks, [[1.0, 0.0], [0.0, 1.0]])


class TestRank:
    """Tests for rank()."""

    def test_ungrouped_returns_top_blocks(self, store):
        config = RankingConfig(min_similarity=0.5, min_length=0)
        result = store.rank(np.array([1.0, 0.0]), store.blocks, config, group_by_note=False)
        assert len(result) == 1
        keys = [b.key for b in result[0].blocks]
        assert keys == [(NOTE_N, 0), (NOTE_M, 0), (NOTE_N, 5), (NOTE_N, 20)]
        scores = [b.score for b in result[0].blocks]
        assert scores == sorted(scores, reverse=True)
        assert result[0].score == pytest.approx(1.0)

    def test_query_note_is_excluded(self, store):
        config = RankingConfig(min_similarity=0.5, min_length=0)
        result = store.rank(np.array([1.0, 0.0]), store.blocks, config,
                            exclude_note_id=NOTE_N, group_by_note=False)
        assert [b.key for b in result[0].blocks] == [(NOTE_M, 0)]
        assert result[0].note_id == NOTE_N

    def test_max_hits(self, store):
        config = RankingConfig(min_similarity=0.0, min_length=0, max_hits=2)
        result = store.rank(np.array([1.0, 0.0]), store.blocks, config, group_by_note=False)
        assert len(result[0].blocks) == 2

    def test_min_length(self, store):
        config = RankingConfig(min_similarity=0.0, min_length=100)
        result = store.rank(np.array([0.0, 1.0]), store.blocks, config, group_by_note=False)
        assert (NOTE_M, 3) not in [b.key for b in result[0].blocks]

    def test_excluded_folders(self, store):
        config = RankingConfig(min_similarity=0.0, min_length=0, exclude_folders=frozenset({"f2"}))
        result = store.rank(np.array([1.0, 0.0]), store.blocks, config, group_by_note=False)
        assert {b.note_id for b in result[0].blocks} == {NOTE_N}

    def test_only_candidates_are_ranked(self, store):
        config = RankingConfig(min_similarity=0.0, min_length=0)
        candidates = [by_key(store, NOTE_M, 0)]
        result = store.rank(np.array([1.0, 0.0]), candidates, config, group_by_note=False)
        assert [b.key for b in result[0].blocks] == [(NOTE_M, 0)]

    def test_nothing_qualifies(self, store):
        config = RankingConfig(min_similarity=0.99, min_length=0)
        assert store.rank(np.array([-1.0, -1.0]), store.blocks, config, group_by_note=False) == []

    def test_empty_query_vector(self, store):
        config = RankingConfig(min_similarity=0.0, min_length=0)
        assert store.rank(np.array([]), store.blocks, config) == []

    def test_grouped_by_max(self, store):
        config = RankingConfig(min_similarity=0.5, min_length=0, agg_method="max")
        result = store.rank(np.array([1.0, 0.0]), store.blocks, config)
        assert [n.note_id for n in result] == [NOTE_N, NOTE_M]

    def test_grouped_by_avg(self, store):
        """The weaker block at line 20 pulls the average of note N below note M."""
        config = RankingConfig(min_similarity=0.5, min_length=0, agg_method="avg")
        result = store.rank(np.array([1.0, 0.0]), store.blocks, config)
        assert [n.note_id for n in result] == [NOTE_M, NOTE_N]

    def test_grouped_max_hits(self, store):
        config = RankingConfig(min_similarity=0.5, min_length=0, max_hits=1)
        result = store.rank(np.array([1.0, 0.0]), store.blocks, config)
        assert len(result) == 1


class TestNeighbors:
    """The neighbor lookups return nearest first."""

    def test_prev_nearest_line_first(self, store):
        prev = store.neighbors_prev(by_key(store, NOTE_N, 15), 2)
        assert [b.line for b in prev] == [10, 5]

    def test_next_nearest_line_first(self, store):
        following = store.neighbors_next(by_key(store, NOTE_N, 5), 2)
        assert [b.line for b in following] == [10, 15]

    def test_neighbors_stay_in_note(self, store):
        assert store.neighbors_prev(by_key(store, NOTE_M, 0), 3) == []
        assert [b.line for b in store.neighbors_next(by_key(store, NOTE_M, 0), 3)] == [3]

    def test_zero_count(self, store):
        block = by_key(store, NOTE_N, 10)
        assert store.neighbors_prev(block, 0) == []
        assert store.neighbors_next(block, 0) == []
        assert store.neighbors_nearest(block, 0) == []

    def test_nearest_by_similarity(self, store):
        nearest = store.neighbors_nearest(by_key(store, NOTE_N, 10), 2)
        assert [b.key for b in nearest] == [(NOTE_M, 3), (NOTE_N, 15)]
        assert nearest[0].score >= nearest[1].score

    def test_nearest_excludes_block_itself(self, store):
        block = by_key(store, NOTE_N, 0)
        nearest = store.neighbors_nearest(block, len(store.blocks))
        assert block.key not in [b.key for b in nearest]
        assert len(nearest) == len(store.blocks) - 1

    def test_unknown_block_has_no_nearest(self, store):
        assert store.neighbors_nearest(make_block("x" * 32, 0), 3) == []
