"""Resolve parsed directives into the set of blocks to rank and the query to rank them against."""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from .project_types import Block, ParsedDirectives, QueryNote, RankingConfig

logger = logging.getLogger(__name__)

# Full-text search over the note collection, returning the ids of matching notes.
FullTextSearch = Callable[[str], Iterable[str]]


@dataclass
class CandidateSet:
    working_set: list[Block]
    query_title: str
    query_body: str
    ranking: RankingConfig
    restricted: bool  # True when explicit notes or a search query chose the candidates


def apply_exclusions(body: str, patterns: Sequence[str]) -> str:
    """Remove every match of each pattern from the body, in order. A pattern
    that is not a valid regular expression is removed as literal text."""
    for pattern in patterns:
        try:
            body = re.sub(pattern, '', body)
        except re.error:
            logger.debug(f"Exclusion '{pattern}' is not a valid regular expression, removing it literally")
            body = body.replace(pattern, '')
    return body


def _search_note_ids(full_text_search: FullTextSearch, query: str) -> set[str]:
    try:
        return set(full_text_search(query))
    except Exception as e:
        logger.warning(f"Full-text search for '{query}' failed, ignoring it: {e}")
        return set()


def build_candidates(directives: ParsedDirectives,
                     corpus: Sequence[Block],
                     query_note: QueryNote,
                     full_text_search: FullTextSearch,
                     ranking: RankingConfig) -> CandidateSet:
    """Build the candidate blocks and the query for the ranking call.

    Blocks of explicitly named notes come first, then blocks of notes matching
    the search query that were not already included. With neither directive the
    whole corpus is a candidate. A restricted candidate set disables the
    minimum-similarity filter, so an explicit request is never dropped by the
    threshold. The caller's ranking config is left untouched.
    """
    working_set: list[Block] = []
    note_ids = directives.explicit_note_ids
    if note_ids:
        working_set.extend(block for block in corpus if block.note_id in note_ids)
    if directives.search_query:
        hits = _search_note_ids(full_text_search, directives.search_query)
        working_set.extend(block for block in corpus
                           if block.note_id in hits and block.note_id not in note_ids)

    restricted = len(working_set) > 0
    if restricted:
        logger.info(f"Ranking {len(working_set)} blocks selected by the user's directives")
        ranking = ranking.model_copy(update={'min_similarity': 0.0})
    else:
        working_set = list(corpus)

    body = query_note.body
    if directives.context_override:
        body = directives.context_override
    body = apply_exclusions(body, directives.exclusion_patterns)

    return CandidateSet(working_set=working_set, query_title=query_note.title,
                        query_body=body, ranking=ranking, restricted=restricted)
