"""Tests for parsing retrieval commands out of a chat transcript."""

import pytest

from notes_assistant.command_parser import parse_commands
from notes_assistant.transcript import ChatFormat

NOTE_A = "0123456789abcdef0123456789abcdef"
NOTE_B = "ABCDEFabcdef0123456789ABCDEFabcd"


@pytest.fixture
def multi_turn_transcript():
    """A chat with commands in an earlier turn and in the last user turn."""
    return (
        "User: what do my notes say about sleep?\n"
        "Search: old query\n"
        "Not context: first\n"
        "Assistant: They say it matters.\n"
        "Ref notes: [1](:/" + NOTE_A + ")\n"
        "User: tell me more\n"
        "Search: circadian\n"
        f"Notes: {NOTE_A} and {NOTE_B}\n"
        "Context: sleep and memory\n"
        "Not context: second\n"
    )


class TestParseCommands:
    """Tests for parse_commands()."""

    def test_precedence_scenario(self):
        """Search and notes lines are consumed, only the question remains."""
        text = f"Search: neural nets\nNotes: {NOTE_A}\nWhat papers discuss this?"
        directives = parse_commands(text)
        assert directives.search_query == "neural nets"
        assert directives.explicit_note_ids == frozenset({NOTE_A})
        assert directives.cleaned_prompt == "What papers discuss this?"

    def test_only_last_user_turn_is_actionable(self, multi_turn_transcript):
        """Values come from the last user turn, never from older turns."""
        directives = parse_commands(multi_turn_transcript)
        assert directives.search_query == "circadian"
        assert directives.explicit_note_ids == frozenset({NOTE_A, NOTE_B})
        assert directives.context_override == "sleep and memory"

    def test_exclusions_accumulate_across_turns(self, multi_turn_transcript):
        """Every Not context line counts, in transcript order."""
        directives = parse_commands(multi_turn_transcript)
        assert directives.exclusion_patterns == ("first", "second")

    def test_cleaned_prompt(self, multi_turn_transcript):
        """Command lines are removed everywhere; Not context keeps its pattern text."""
        directives = parse_commands(multi_turn_transcript)
        assert directives.cleaned_prompt == (
            "User: what do my notes say about sleep?\n"
            " first\n"
            "Assistant: They say it matters.\n"
            "User: tell me more\n"
            " second\n"
        )

    def test_commands_in_assistant_last_turn_are_ignored(self):
        """When the transcript ends with an assistant turn nothing is actionable."""
        text = "User: hi\nSearch: cats\nAssistant: hello\nSearch: dogs\n"
        directives = parse_commands(text)
        assert directives.search_query == ""
        assert directives.cleaned_prompt == "User: hi\nAssistant: hello\n"

    def test_commands_are_case_insensitive(self):
        directives = parse_commands("SEARCH: Dogs\ncontext: pets\nquestion")
        assert directives.search_query == "Dogs"
        assert directives.context_override == "pets"
        assert directives.cleaned_prompt == "question"

    def test_last_search_line_wins(self):
        directives = parse_commands("Search: first\nSearch: second\nquestion")
        assert directives.search_query == "second"

    def test_last_notes_line_wins(self):
        directives = parse_commands(f"Notes: {NOTE_A}\nNotes: {NOTE_B}\nquestion")
        assert directives.explicit_note_ids == frozenset({NOTE_B})

    def test_notes_line_without_ids(self):
        """Tokens that are not 32 alphanumeric characters are not note ids."""
        directives = parse_commands("Notes: some-note abc123\nquestion")
        assert directives.explicit_note_ids == frozenset()
        assert not directives.restricts_candidates

    def test_repeated_not_context_token(self):
        directives = parse_commands("Not context:Not context: bar\nquestion")
        assert directives.exclusion_patterns == ("bar",)
        assert directives.cleaned_prompt == " bar\nquestion"

    def test_empty_not_context(self):
        """A Not context line without a pattern adds no exclusion."""
        directives = parse_commands("Not context:\nquestion")
        assert directives.exclusion_patterns == ()

    def test_ref_notes_lines_are_removed(self):
        text = f"User: hi\nAssistant: hello\nRef notes: [1](:/{NOTE_A})\nUser: more\n"
        directives = parse_commands(text)
        assert "Ref notes" not in directives.cleaned_prompt

    def test_empty_transcript(self):
        directives = parse_commands("")
        assert directives.cleaned_prompt == ""
        assert directives.search_query == ""
        assert directives.explicit_note_ids == frozenset()
        assert directives.context_override == ""
        assert directives.exclusion_patterns == ()

    def test_custom_chat_format(self):
        """Role markers come from the chat format."""
        fmt = ChatFormat(user_prefix="Me:", assistant_prefix="Bot:")
        text = "Me: hi\nSearch: a\nBot: hello\nMe: again\nSearch: b\n"
        directives = parse_commands(text, fmt)
        assert directives.search_query == "b"
        assert directives.cleaned_prompt == "Me: hi\nBot: hello\nMe: again\n"

    def test_parsing_is_idempotent(self, multi_turn_transcript):
        """Parsing the cleaned prompt finds nothing more to remove."""
        cleaned = parse_commands(multi_turn_transcript).cleaned_prompt
        again = parse_commands(cleaned)
        assert again.cleaned_prompt == cleaned
        assert again.search_query == ""
        assert again.explicit_note_ids == frozenset()
        assert again.context_override == ""
        assert again.exclusion_patterns == ()

    @pytest.mark.parametrize("text", [
        "Not context:Search: secret\nWhat now?\n",
        f"Not context: Notes: {NOTE_A}\nWhat now?\n",
        "User: hi\nNot context:Context: other\nNot context:Ref notes: [1](:/x)\n",
        "Not context:not context: Search: deep\nquestion",
    ])
    def test_parsing_command_remainders_is_idempotent(self, text):
        """A Not context line whose remainder is another command leaves nothing to parse."""
        cleaned = parse_commands(text).cleaned_prompt
        again = parse_commands(cleaned)
        assert again.cleaned_prompt == cleaned
        assert again.search_query == ""
        assert again.explicit_note_ids == frozenset()
        assert again.context_override == ""
        assert again.exclusion_patterns == ()

    def test_command_remainder_is_only_an_exclusion(self):
        directives = parse_commands("Not context:Search: secret\nWhat now?\n")
        assert directives.exclusion_patterns == ("Search: secret",)
        assert directives.search_query == ""
        assert directives.cleaned_prompt == "What now?\n"

    def test_ref_notes_prefix_is_case_insensitive(self):
        """Reference lines are removed whatever their case, like every other command."""
        directives = parse_commands(f"Ref notes: [1](:/{NOTE_A})\nREF NOTES: mine\nquestion")
        assert directives.cleaned_prompt == "question"
