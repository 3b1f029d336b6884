"""UI-agnostic entry points of the assistant.

Two operations are exposed to a user interface:

1. **NotesChat**: continue a chat transcript, using the user's own notes as
   context. The transcript's commands (``Search:``, ``Notes:``, ``Context:``,
   ``Not context:``) choose which notes are ranked, the best blocks are expanded
   with their neighbors, packed into the memory token budget, and sent along
   with the chat.
2. **ResearchRunner**: run the literature pipeline for a prompt and render the
   resulting review.

Both talk to the user only through an InterfaceAdapter, and both resolve to a
result object rather than raising.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import requests

from . import constants
from .attachment import expand_top_note
from .candidates import FullTextSearch, build_candidates
from .command_parser import parse_commands
from .config import AssistantConfig
from .context_packer import ContextPacker, GreedyContextPacker, format_note_links
from .embedding_store import EmbeddingStore
from .interface_adapter import InterfaceAdapter
from .literature import ResearchResult, ResearchStage, do_research, paper_token_budget
from .project_types import Block, ParsedDirectives, QueryNote, RankedNote
from .prompt import subst_prompt
from .provider import TextGenerationProvider
from .transcript import ChatFormat, to_chat_messages

logger = logging.getLogger(__name__)

NO_NOTES_MESSAGE = ("No notes found. Perhaps try to rephrase your question, "
                    "or start a new chat note for fresh context.")
CONTEXT_LIMIT_MESSAGE = ("Could not include notes due to context limits. "
                         "Try to increase memory tokens in the settings.")


@dataclass
class NotesChatResult:
    """Result of a chat turn over the user's notes."""
    success: bool
    reply: str  # text to append to the transcript, including role markers
    nearest: List[RankedNote] = field(default_factory=list)
    message: str = ""


def tail_by_tokens(text: str, tokens: int) -> str:
    """The end of the text that fits in the given number of tokens, starting at
    a word boundary."""
    max_chars = tokens * constants.CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    tail = text[len(text) - max_chars:]
    boundary = next((i for i, c in enumerate(tail) if c.isspace()), None)
    return tail[boundary + 1:] if boundary is not None else tail


class NotesChat:
    """Chat with the user's notes as context.

    The embedding store and the full-text search belong to the host
    application; the corpus is the list of indexed blocks of all notes.
    """

    def __init__(self, provider: TextGenerationProvider, store: EmbeddingStore,
                 interface: InterfaceAdapter, config: AssistantConfig,
                 full_text_search: FullTextSearch, packer: Optional[ContextPacker] = None):
        self.provider = provider
        self.store = store
        self.interface = interface
        self.config = config
        self.full_text_search = full_text_search
        self.packer = packer or GreedyContextPacker()
        self.fmt = ChatFormat(config.user_prefix, config.assistant_prefix)

    def _format_reply(self, text: str, note_links: str = '') -> str:
        links = f"{note_links}\n" if note_links else ''
        return f"\n\n{self.fmt.assistant_prefix} {text.strip()}\n\n{links}{self.fmt.user_prefix} "

    async def prepare(self, transcript: str, query_note: QueryNote,
                      corpus: Sequence[Block]) -> tuple[ParsedDirectives, List[RankedNote]]:
        """Parse the transcript, rank the candidate notes and attach neighboring
        blocks to the best ones. Returns the directives and the ranking."""
        transcript = tail_by_tokens(transcript, self.config.effective_memory_tokens())
        directives = parse_commands(transcript, self.fmt)
        candidates = build_candidates(directives, corpus, query_note, self.full_text_search,
                                      self.config.ranking)
        query_vector = await self.provider.embed(f"{candidates.query_title}\n{candidates.query_body}")
        nearest = self.store.rank(query_vector, candidates.working_set, candidates.ranking,
                                  exclude_note_id=query_note.note_id, group_by_note=False)
        expand_top_note(nearest, self.store, self.config.attach)
        return directives, nearest

    def _pack(self, directives: ParsedDirectives, nearest: List[RankedNote]) -> tuple[str, List[Block]]:
        text, included = self.packer.pack(nearest[0].blocks, self.config.effective_memory_tokens(),
                                          directives.search_query)
        nearest[0].blocks = included
        return text, included

    async def chat_with_notes(self, transcript: str, query_note: QueryNote,
                              corpus: Sequence[Block]) -> NotesChatResult:
        """Reply to the last user turn of the transcript, citing the notes used."""
        with self.interface.progress_context("Generating notes response..."):
            directives, nearest = await self.prepare(transcript, query_note, corpus)
            if not nearest or not nearest[0].blocks:
                logger.info("No notes matched the chat")
                reply = self._format_reply(NO_NOTES_MESSAGE)
                self.interface.stream_text(reply)
                return NotesChatResult(success=False, reply=reply, nearest=nearest, message=NO_NOTES_MESSAGE)

            note_text, included = self._pack(directives, nearest)
            if not note_text:
                logger.info("No note block fits in the memory token budget")
                reply = self._format_reply(CONTEXT_LIMIT_MESSAGE)
                self.interface.stream_text(reply)
                return NotesChatResult(success=False, reply=reply, nearest=nearest,
                                       message=CONTEXT_LIMIT_MESSAGE)

            prompt = directives.cleaned_prompt + subst_prompt('notes-chat-context', notes=note_text)
            messages = to_chat_messages(prompt, self.fmt)
            logger.debug(f"Sending chat of {len(messages)} messages with {len(included)} note blocks")
            completion = await self.provider.chat(messages)

        if not completion:
            return NotesChatResult(success=False, reply='', nearest=nearest,
                                   message="The request was cancelled")
        reply = self._format_reply(completion, format_note_links(included))
        self.interface.stream_text(reply)
        self.interface.display_notes(nearest)
        return NotesChatResult(success=True, reply=reply, nearest=nearest,
                               message=f"Used {len(included)} blocks from the notes")

    async def preview_context(self, transcript: str, query_note: QueryNote,
                              corpus: Sequence[Block]) -> List[RankedNote]:
        """Show which note blocks the next chat turn would use, without
        generating a reply."""
        directives, nearest = await self.prepare(transcript, query_note, corpus)
        if nearest:
            self._pack(directives, nearest)
        self.interface.display_notes(nearest)
        return nearest


class ResearchRunner:
    """Runs the literature pipeline for a user interface.

    The optional requests session is shared by concurrent abstract fetches
    running in worker threads and must be thread-safe."""

    def __init__(self, provider: TextGenerationProvider, interface: InterfaceAdapter,
                 config: AssistantConfig, rng: Optional[random.Random] = None,
                 session: Optional[requests.Session] = None):
        self.provider = provider
        self.interface = interface
        self.config = config
        self.rng = rng
        self.session = session

    async def research(self, prompt: str, n_papers: int = constants.DEFAULT_N_PAPERS,
                       paper_tokens_percent: float = constants.DEFAULT_PAPER_TOKENS_PERCENT,
                       only_search: bool = False) -> ResearchResult:
        """Search, summarize and review papers for the prompt. paper_tokens_percent
        is the share of max tokens given to the paper summaries."""
        if not self.config.scopus_api_key:
            self.interface.show_error("Please set your Scopus API key (SCOPUS_API_KEY).")
            return ResearchResult(stage=ResearchStage.ABORTED)
        paper_tokens = paper_token_budget(paper_tokens_percent, self.config.max_tokens, only_search)
        logger.info(f"Research on '{prompt[:100]}' with {n_papers} papers, "
                    f"summary budget {paper_tokens if math.isfinite(paper_tokens) else 'unlimited'}")
        result = await do_research(prompt, n_papers, paper_tokens, only_search, self.provider,
                                   self.interface, self.config, rng=self.rng, session=self.session)
        if result.review:
            self.interface.render_content(result.review, title="📚 Literature review")
        elif result.stage == ResearchStage.DONE and not only_search:
            self.interface.show_error("No review was generated.")
        return result
