"""Tests for packing note blocks into a token budget."""

from notes_assistant.context_packer import (
    GreedyContextPacker,
    estimate_tokens,
    format_note_links,
    note_numbers,
)
from notes_assistant.project_types import Block

NOTE_A = "a" * 32
NOTE_B = "b" * 32


def block(note_id, line, text="x" * 30):
    return Block(note_id=note_id, line=line, title="T", text=text)


class TestHelpers:

    def test_estimate_tokens(self):
        assert estimate_tokens("abcdefgh") == 2

    def test_note_numbers_by_first_appearance(self):
        blocks = [block(NOTE_B, 0), block(NOTE_A, 0), block(NOTE_B, 4)]
        assert note_numbers(blocks) == {NOTE_B: 1, NOTE_A: 2}

    def test_format_note_links(self):
        blocks = [block(NOTE_A, 0), block(NOTE_B, 0), block(NOTE_A, 3)]
        assert format_note_links(blocks) == f"Ref notes: [1](:/{NOTE_A}), [2](:/{NOTE_B})"

    def test_format_no_links(self):
        assert format_note_links([]) == ""


class TestGreedyContextPacker:
    """Tests for GreedyContextPacker.pack()."""

    def test_everything_fits(self):
        blocks = [block(NOTE_A, 0), block(NOTE_B, 0)]
        text, included = GreedyContextPacker().pack(blocks, 1000)
        assert included == blocks
        assert text.startswith("## [1] T\n")
        assert "## [2] T\n" in text

    def test_stops_at_first_block_that_does_not_fit(self):
        """Each small entry is ~10 tokens; a smaller block after the big one is not used."""
        blocks = [block(NOTE_A, 0), block(NOTE_A, 1), block(NOTE_B, 0, text="y" * 400), block(NOTE_B, 1, text="z")]
        text, included = GreedyContextPacker().pack(blocks, 25)
        assert included == blocks[:2]
        assert "z" not in text

    def test_nothing_fits(self):
        assert GreedyContextPacker().pack([block(NOTE_A, 0)], 2) == ("", [])

    def test_no_blocks(self):
        assert GreedyContextPacker().pack([], 100) == ("", [])

    def test_search_hint_header(self):
        text, included = GreedyContextPacker().pack([block(NOTE_A, 0)], 1000, search_hint="cats")
        assert text.startswith("The notes below were selected by searching for: cats")
        assert len(included) == 1

    def test_same_note_keeps_its_number(self):
        blocks = [block(NOTE_A, 0), block(NOTE_B, 0), block(NOTE_A, 5)]
        text, _ = GreedyContextPacker().pack(blocks, 1000)
        assert text.count("## [1] T") == 2
