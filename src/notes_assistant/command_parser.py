"""Extract retrieval directives from a chat transcript.

Commands are line-anchored, case-insensitive prefixes. This includes
``Ref notes:``, so a user line starting with ``ref notes:`` in any case is
removed like a reference line of a previous reply. They are recognized in
this order of precedence:

1. ``Ref notes:``   reference lines of previous replies; removed from every turn.
2. ``Search:``      full-text search query; the last one in the last user turn wins.
3. ``Notes:``       explicit note ids; the last one in the last user turn wins.
4. ``Context:``     replaces the query note body; the last one in the last user turn wins.
5. ``Not context:`` pattern removed from the query note body; every occurrence in
                    the transcript counts, and only the command token is removed.
                    A remainder that is itself a rule 1-4 line is dropped too.

Lines consumed by rules 1-4 are removed from the transcript wherever they
appear, but only the final user turn is actionable. Exclusions accumulate
across all turns.

The transcript is traversed once, producing the directives and the cleaned
transcript together.
"""

import logging
import re
from typing import Optional

from . import constants
from .project_types import ParsedDirectives
from .transcript import ChatFormat, split_turns, last_user_turn

logger = logging.getLogger(__name__)


def _command_re(command: str) -> re.Pattern:
    return re.compile('^' + re.escape(command) + r'(?P<rest>.*)$', re.IGNORECASE | re.DOTALL)


REF_NOTES_RE = _command_re(constants.REF_NOTES_PREFIX)
SEARCH_RE = _command_re(constants.SEARCH_NOTES_CMD)
NOTES_RE = _command_re(constants.USER_NOTES_CMD)
CONTEXT_RE = _command_re(constants.CONTEXT_CMD)
NOT_CONTEXT_TOKEN_RE = re.compile('^(?:' + re.escape(constants.NOT_CONTEXT_CMD) + ')+', re.IGNORECASE)
NOTE_ID_RE = re.compile(constants.NOTE_ID_PATTERN)

# Lines of rules 1-4, removed from the cleaned transcript
CONSUMED_LINE_RES = (REF_NOTES_RE, SEARCH_RE, NOTES_RE, CONTEXT_RE)


def parse_commands(transcript: str, fmt: ChatFormat = ChatFormat()) -> ParsedDirectives:
    """Parse the retrieval commands of a transcript.

    Returns the directives of the last user turn together with the cleaned
    transcript (``cleaned_prompt``), which is the effective prompt. Parsing the
    cleaned transcript again finds no further commands.
    """
    turns = split_turns(transcript, fmt)
    last_user = last_user_turn(turns)

    search_query = ''
    notes_line: Optional[str] = None
    context_override = ''
    exclusions: list[str] = []
    kept: list[str] = []

    for turn in turns:
        actionable = turn is last_user
        for raw_line in turn.lines:
            line = raw_line.rstrip('\r\n')
            if REF_NOTES_RE.match(line):
                continue
            match = SEARCH_RE.match(line)
            if match:
                if actionable:
                    search_query = match.group('rest').strip()
                continue
            match = NOTES_RE.match(line)
            if match:
                if actionable:
                    notes_line = line
                continue
            match = CONTEXT_RE.match(line)
            if match:
                if actionable:
                    context_override = match.group('rest').strip()
                continue
            match = NOT_CONTEXT_TOKEN_RE.match(line)
            if match:
                remainder = raw_line[match.end():]
                pattern = remainder.strip()
                if pattern:
                    exclusions.append(pattern)
                if not any(r.match(remainder.rstrip('\r\n')) for r in CONSUMED_LINE_RES):
                    kept.append(remainder)
                continue
            kept.append(raw_line)

    note_ids = frozenset(NOTE_ID_RE.findall(notes_line)) if notes_line is not None else frozenset()
    directives = ParsedDirectives(
        cleaned_prompt=''.join(kept),
        search_query=search_query,
        explicit_note_ids=note_ids,
        context_override=context_override,
        exclusion_patterns=tuple(exclusions),
    )
    if directives.restricts_candidates or context_override or exclusions:
        logger.debug(f"Parsed directives: search='{search_query}', notes={sorted(note_ids)}, "
                     f"context={len(context_override)} chars, exclusions={len(exclusions)}")
    return directives
