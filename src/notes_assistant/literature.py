"""Literature pipeline: from a prompt to a review of the relevant papers.

The pipeline is a LlamaIndex workflow with three steps:

1. **Searching**: generate a bibliographic query from the prompt and page
   through the Scopus search API. A failed page regenerates the query and
   retries, within a small budget; past it, the search is aborted.
2. **Summarizing**: shuffle the results, fetch abstracts and summarize the
   papers (a few concurrently, consumed in order) until the token budget for
   summaries is used up. Each citation is streamed as soon as it is ready.
3. **Assembling**: send the summaries and the prompt to the model for the
   review. Skipped when only a search was requested.

``do_research()`` runs the whole workflow and returns a ResearchResult.
"""

import asyncio
import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import requests
from llama_index.core.workflow import (
    Context,
    Event,
    StartEvent,
    StopEvent,
    Workflow,
    step,
)

from . import constants
from .abstracts import fetch_abstract
from .config import AssistantConfig
from .context_packer import estimate_tokens
from .interface_adapter import InterfaceAdapter
from .project_types import PaperRecord
from .prompt import subst_prompt
from .provider import TextGenerationProvider
from .task_window import OrderedTaskWindow

logger = logging.getLogger(__name__)

SEARCH_ENGINE = "Scopus"


class ResearchStage(Enum):
    SEARCHING = "searching"
    SUMMARIZING = "summarizing"
    ASSEMBLING = "assembling"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class ResearchResult:
    """Outcome of a literature pipeline run."""
    stage: ResearchStage
    papers: List[PaperRecord] = field(default_factory=list)
    review: str = ""
    query: str = ""


def paper_token_budget(percent: float, max_tokens: int, only_search: bool) -> float:
    """Token budget for paper summaries, given as a percentage of max tokens.
    Unbounded when only searching, since no review prompt has to fit."""
    if only_search:
        return math.inf
    return math.ceil(percent / 100 * max_tokens)


def parse_search_entry(entry: dict) -> PaperRecord:
    """Build a record from one entry of a Scopus search response. Title, creator
    and cover date are required; raises KeyError, ValueError or TypeError for
    entries missing them."""
    creator = entry['dc:creator']
    first_author = creator.split(', ')[0].split(' ')[0]
    year = int(entry['prism:coverDate'].split('-')[0])
    description = entry.get('dc:description')
    abstract = description.strip() if isinstance(description, str) else ''
    return PaperRecord(
        title=entry['dc:title'],
        authors=(first_author,),
        year=year,
        journal=entry.get('prism:publicationName') or '',
        doi=entry.get('prism:doi') or '',
        citation_count=int(entry.get('citedby-count') or 0),
        abstract=abstract or None,
    )


def _get_search_page(query: str, start: int, api_key: str,
                     session: Optional[requests.Session] = None) -> Optional[list]:
    """One page of search entries, or None if the request failed. A response
    whose body cannot be read as search results is an empty page."""
    params = {
        'query': query,
        'count': constants.PAPERS_PAGE_SIZE,
        'start': start,
        'sort': constants.SCOPUS_SORT_ORDER,
    }
    headers = {'Accept': 'application/json', 'X-ELS-APIKey': api_key}
    getter = session.get if session is not None else requests.get
    try:
        response = getter(constants.SCOPUS_SEARCH_URL, params=params, headers=headers,
                          timeout=constants.HTTP_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        logger.warning(f"Paper search request failed: {e}")
        return None
    if not response.ok:
        logger.warning(f"Paper search returned status {response.status_code}")
        return None
    try:
        entries = response.json()['search-results']['entry']
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Malformed paper search response, skipping page: {e!r}")
        return []
    return entries if isinstance(entries, list) else []


async def generate_search_query(prompt: str, provider: TextGenerationProvider,
                                interface: InterfaceAdapter) -> str:
    query = (await provider.complete(subst_prompt('paper-search-query', engine=SEARCH_ENGINE,
                                                  prompt=prompt))).strip()
    interface.stream_text(f"\nsearching for: {query}\n\n")
    logger.info(f"Paper search query: {query}")
    return query


async def search_papers(prompt: str, n: int, provider: TextGenerationProvider,
                        config: AssistantConfig, interface: InterfaceAdapter,
                        session: Optional[requests.Session] = None) -> Optional[List[PaperRecord]]:
    """Search for up to n papers relevant to the prompt. Returns None if the
    search had to be aborted."""
    papers, _ = await _search(prompt, n, provider, config, interface, session)
    return papers


async def _search(prompt: str, n: int, provider: TextGenerationProvider,
                  config: AssistantConfig, interface: InterfaceAdapter,
                  session: Optional[requests.Session] = None) -> tuple[Optional[List[PaperRecord]], str]:
    """The search results and the last query sent to the search API."""
    query = await generate_search_query(prompt, provider, interface)
    pages = math.ceil(n / constants.PAPERS_PAGE_SIZE)
    start = 0
    attempted = 0
    records: List[PaperRecord] = []
    while attempted < pages:
        attempted += 1
        entries = await asyncio.to_thread(_get_search_page, query, start, config.scopus_api_key, session)
        if entries is None:
            if pages > constants.SEARCH_RETRY_BUDGET:
                logger.error(f"Paper search failed after {attempted} page requests, aborting")
                return None, query
            logger.info("Retrying paper search with a new query")
            query = await generate_search_query(prompt, provider, interface)
            pages += 1
            continue
        for entry in entries:
            try:
                records.append(parse_search_entry(entry))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.debug(f"Skipped search entry ({e!r}): {entry}")
        start += constants.PAPERS_PAGE_SIZE
    logger.info(f"Paper search found {len(records)} records")
    return records[:n], query


async def summarize_paper(record: PaperRecord, prompt: str, provider: TextGenerationProvider,
                          interface: InterfaceAdapter, config: AssistantConfig,
                          session: Optional[requests.Session] = None) -> PaperRecord:
    """Fetch the abstract and summarize it with respect to the prompt. The
    citation line is streamed as soon as the summary is ready. Records without
    an abstract, or whose summary came back empty, are returned without summary."""
    record = await asyncio.to_thread(fetch_abstract, record, config.scopus_api_key, session)
    if not record.abstract:
        return record
    response = await provider.complete(subst_prompt('paper-summary', prompt=prompt, abstract=record.abstract))
    if not response.strip():
        return record
    record = record.with_summary(f"({record.first_author}, {record.year}) {response.strip()}")
    citation = record.citation()
    if config.include_paper_summary:
        citation += f"\t- {record.summary.replace(chr(10), ' ')}\n"
    interface.stream_text(citation)
    return record


async def sample_and_summarize(papers: List[PaperRecord], paper_tokens: float, prompt: str,
                               provider: TextGenerationProvider, interface: InterfaceAdapter,
                               config: AssistantConfig, rng: Optional[random.Random] = None,
                               session: Optional[requests.Session] = None) -> List[PaperRecord]:
    """Summarize papers in random order until the summaries use up paper_tokens.

    Papers without abstract or summary are skipped and do not count. Sampling
    stops at the first summary that would exceed the budget. Abstracts are
    fetched from several threads at once, so a session must be thread-safe;
    leave it None to use a fresh connection per request."""
    shuffled = list(papers)
    (rng or random.Random()).shuffle(shuffled)

    async def summarize(record: PaperRecord) -> PaperRecord:
        return await summarize_paper(record, prompt, provider, interface, config, session)

    window = OrderedTaskWindow(summarize, shuffled, constants.SUMMARY_BATCH_SIZE)
    results: List[PaperRecord] = []
    tokens = 0.0
    try:
        for i in range(len(shuffled)):
            record = await window.result(i)
            if not record.summary:
                continue
            size = estimate_tokens(record.summary)
            if tokens + size > paper_tokens:
                break
            results.append(record)
            tokens += size
    finally:
        await window.drain()
    logger.info(f"Sampled {len(results)} papers, retrieved {window.dispatched} papers")
    return results


def build_review_prompt(papers: List[PaperRecord], prompt: str) -> str:
    summaries = '\n\n'.join(paper.summary for paper in papers if paper.summary)
    return subst_prompt('literature-review', summaries=summaries, prompt=prompt)


class PapersFoundEvent(Event):
    """Search results, ready to be sampled and summarized"""
    prompt: str
    query: str
    papers: List[PaperRecord]
    paper_tokens: float
    only_search: bool


class PapersSummarizedEvent(Event):
    """The papers included in the review, in sampling order"""
    prompt: str
    query: str
    papers: List[PaperRecord]
    only_search: bool


class LiteratureReviewWorkflow(Workflow):
    """Search, summarize and review papers for a prompt. The result of a run is
    a ResearchResult."""

    def __init__(self, provider: TextGenerationProvider, interface: InterfaceAdapter,
                 config: AssistantConfig, rng: Optional[random.Random] = None,
                 session: Optional[requests.Session] = None, **kwargs):
        kwargs.setdefault('timeout', None)
        super().__init__(**kwargs)
        self.provider = provider
        self.interface = interface
        self.config = config
        self.rng = rng
        self.session = session

    @step
    async def search_step(self, ctx: Context, ev: StartEvent) -> PapersFoundEvent | StopEvent:
        prompt = str(ev.prompt)
        n_papers = int(getattr(ev, 'n_papers', constants.DEFAULT_N_PAPERS))
        self.interface.show_progress(f"Searching for {n_papers} papers", {'stage': ResearchStage.SEARCHING})
        papers, query = await _search(prompt, n_papers, self.provider, self.config,
                                      self.interface, self.session)
        if papers is None:
            self.interface.show_error("The paper search failed. Check the Scopus API key, or try again later.")
            return StopEvent(result=ResearchResult(stage=ResearchStage.ABORTED, query=query))
        return PapersFoundEvent(prompt=prompt, query=query, papers=papers,
                                paper_tokens=float(getattr(ev, 'paper_tokens', math.inf)),
                                only_search=bool(getattr(ev, 'only_search', False)))

    @step
    async def summarize_step(self, ctx: Context, ev: PapersFoundEvent) -> PapersSummarizedEvent:
        self.interface.show_progress(f"Summarizing papers from {len(ev.papers)} results",
                                     {'stage': ResearchStage.SUMMARIZING})
        papers = await sample_and_summarize(ev.papers, ev.paper_tokens, ev.prompt, self.provider,
                                            self.interface, self.config, self.rng, self.session)
        return PapersSummarizedEvent(prompt=ev.prompt, query=ev.query, papers=papers,
                                     only_search=ev.only_search)

    @step
    async def assemble_step(self, ctx: Context, ev: PapersSummarizedEvent) -> StopEvent:
        if ev.only_search:
            return StopEvent(result=ResearchResult(stage=ResearchStage.DONE, papers=ev.papers, query=ev.query))
        self.interface.show_progress(f"Writing a review of {len(ev.papers)} papers",
                                     {'stage': ResearchStage.ASSEMBLING})
        review = await self.provider.complete(build_review_prompt(ev.papers, ev.prompt))
        return StopEvent(result=ResearchResult(stage=ResearchStage.DONE, papers=ev.papers,
                                               review=review, query=ev.query))


async def do_research(prompt: str, n_papers: int, paper_tokens: float, only_search: bool,
                      provider: TextGenerationProvider, interface: InterfaceAdapter,
                      config: AssistantConfig, rng: Optional[random.Random] = None,
                      session: Optional[requests.Session] = None) -> ResearchResult:
    """Run the literature pipeline. When only searching, every citation is
    streamed with its summary and no review is written."""
    if only_search:
        config = config.model_copy(update={'include_paper_summary': True})
    workflow = LiteratureReviewWorkflow(provider, interface, config, rng=rng, session=session)
    result = await workflow.run(prompt=prompt, n_papers=n_papers, paper_tokens=paper_tokens,
                                only_search=only_search)
    logger.info(f"Literature pipeline finished: {result.stage.value}, {len(result.papers)} papers")
    return result
