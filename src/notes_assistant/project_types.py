"""Define common types used across the note chat and literature pipelines.
"""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class ParsedDirectives(BaseModel):
    """Retrieval directives extracted from the last user turn of a chat transcript."""
    model_config = ConfigDict(frozen=True)

    cleaned_prompt: str = Field(description="The transcript with all consumed command lines removed")
    search_query: str = Field(default="", description="Full-text search query for candidate notes")
    explicit_note_ids: frozenset[str] = Field(default_factory=frozenset,
                                              description="Note ids named explicitly by the user")
    context_override: str = Field(default="", description="Replaces the body of the query note")
    exclusion_patterns: tuple[str, ...] = Field(default=(),
                                                description="Patterns removed from the query note body, in order")

    @property
    def restricts_candidates(self) -> bool:
        return bool(self.explicit_note_ids) or bool(self.search_query)


class Block(BaseModel):
    """A contiguous fragment of a note, as indexed by the embedding store."""
    model_config = ConfigDict(frozen=True)

    note_id: str = Field(description="Id of the note containing this block")
    line: int = Field(description="Line offset of the block in its source note")
    title: str = Field(description="Title of the note (and heading of the block, if any)")
    text: str = Field(default="", description="Text of the block")
    score: float = Field(default=0.0, description="Similarity score supplied by the embedding store")
    folder_id: Optional[str] = Field(default=None, description="Folder of the containing note")

    @property
    def key(self) -> tuple[str, int]:
        """Unique identity of a block."""
        return (self.note_id, self.line)


class RankedNote(BaseModel):
    """A note together with its ordered, scored blocks.

    ``blocks`` is replaced in place as the context for the note is refined
    (block attachment, then token-budget packing)."""
    note_id: str = Field(description="Id of the note")
    title: str = Field(description="Title of the note")
    score: float = Field(default=0.0, description="Aggregate score of the note")
    blocks: list[Block] = Field(default_factory=list, description="Blocks, best first")


class QueryNote(BaseModel):
    """The note that candidates are ranked against."""
    note_id: str = Field(description="Id of the note")
    title: str = Field(default="", description="Title of the note")
    body: str = Field(default="", description="Body (or selected text) of the note")


class RankingConfig(BaseModel):
    """Parameters of the nearest-neighbor ranking call."""
    model_config = ConfigDict(frozen=True)

    min_similarity: float = Field(default=0.5, ge=0.0, description="Minimum block similarity")
    min_length: int = Field(default=100, ge=0, description="Minimum block length in characters")
    agg_method: Literal["max", "avg"] = Field(default="max", description="How block scores combine into a note score")
    exclude_folders: frozenset[str] = Field(default_factory=frozenset, description="Folder ids to ignore")
    max_hits: int = Field(default=10, ge=1, description="Maximum number of results")


class AttachmentCounts(BaseModel):
    """How many neighboring blocks to attach to each ranked block."""
    model_config = ConfigDict(frozen=True)

    prev: int = Field(default=0, ge=0, description="Preceding blocks of the same note")
    next: int = Field(default=0, ge=0, description="Following blocks of the same note")
    nearest: int = Field(default=0, ge=0, description="Globally nearest blocks")


class PaperRecord(BaseModel):
    """A bibliographic record, enriched by abstract fetching and summarization.

    Records are never mutated; each stage returns an updated copy."""
    model_config = ConfigDict(frozen=True)

    title: str = Field(description="The paper title")
    authors: tuple[str, ...] = Field(description="Author names, first author first")
    year: int = Field(description="Year of publication")
    journal: str = Field(default="", description="Publication venue")
    doi: str = Field(default="", description="The DOI, without resolver prefix")
    citation_count: int = Field(default=0, description="Number of citations")
    abstract: Optional[str] = Field(default=None, description="The abstract, once fetched")
    summary: Optional[str] = Field(default=None, description="Prompt-focused summary, once generated")
    compression_ratio: float = Field(default=1.0, description="len(summary)/len(abstract), diagnostic only")

    @property
    def first_author(self) -> str:
        return self.authors[0] if self.authors else ""

    def with_abstract(self, abstract: Optional[str]) -> 'PaperRecord':
        """Return a copy with the abstract set. An abstract that is already
        present is never replaced or cleared."""
        if self.abstract or not abstract:
            return self
        return self.model_copy(update={'abstract': abstract})

    def with_summary(self, summary: str) -> 'PaperRecord':
        """Return a copy with the summary and compression ratio set."""
        if self.summary is not None:
            raise ValueError(f"Summary of '{self.title}' is already set")
        ratio = len(summary) / len(self.abstract) if self.abstract else 1.0
        return self.model_copy(update={'summary': summary, 'compression_ratio': ratio})

    def citation(self) -> str:
        """Markdown citation line for progressive output."""
        return (f"- {self.first_author} et al., [{self.title}](https://doi.org/{self.doi}), "
                f"{self.journal}, {self.year}, cited: {self.citation_count}.\n")
