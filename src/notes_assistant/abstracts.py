"""Fetch paper abstracts from bibliographic services.

Search results often come without an abstract. This module tries three sources
in turn, stopping at the first one that has it:

1. Crossref works API (no key needed, abstracts are JATS XML)
2. Scopus abstract retrieval (needs the Elsevier API key)
3. ScienceDirect article retrieval (same key)

The fetchers never raise for network or parse failures: a failed lookup is a
miss, and the next source is tried.

Without a session every request goes through ``requests.get``, which opens a
session of its own. The literature pipeline fetches several abstracts at once
from worker threads, so a session passed in there must be safe to share
between threads (a plain ``requests.Session`` is not guaranteed to be).
"""

import logging
import re
from typing import Optional

import requests

from . import constants
from .project_types import PaperRecord

logger = logging.getLogger(__name__)

JATS_TAG_RE = re.compile(r'<[^>]+>')
WHITESPACE_RE = re.compile(r'\s+')


def strip_jats(text: str) -> str:
    """Remove JATS XML markup (e.g. <jats:p>) and collapse whitespace."""
    return WHITESPACE_RE.sub(' ', JATS_TAG_RE.sub(' ', text)).strip()


def _get_json(url: str, headers: dict, session: Optional[requests.Session] = None) -> Optional[dict]:
    """GET a JSON document, or None on any network error or non-2xx status."""
    getter = session.get if session is not None else requests.get
    try:
        response = getter(url, headers=headers, timeout=constants.HTTP_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        logger.debug(f"Request to {url} failed: {e}")
        return None
    if not response.ok:
        logger.debug(f"Request to {url} returned status {response.status_code}")
        return None
    try:
        return response.json()
    except ValueError as e:
        logger.debug(f"Response from {url} is not JSON: {e}")
        return None


def _elsevier_headers(api_key: str) -> dict:
    return {'Accept': 'application/json', 'X-ELS-APIKey': api_key}


def _coredata_description(document: Optional[dict], root: str) -> Optional[str]:
    try:
        description = document[root]['coredata']['dc:description']
    except (KeyError, TypeError):
        return None
    if not isinstance(description, str):
        return None
    return description.strip() or None


def fetch_crossref_abstract(doi: str, session: Optional[requests.Session] = None) -> Optional[str]:
    if not doi:
        return None
    document = _get_json(constants.CROSSREF_WORKS_URL + doi, {'Accept': 'application/json'}, session)
    try:
        abstract = document['message']['abstract']
    except (KeyError, TypeError):
        return None
    if not isinstance(abstract, str):
        return None
    return strip_jats(abstract) or None


def fetch_scopus_abstract(doi: str, api_key: str, session: Optional[requests.Session] = None) -> Optional[str]:
    if not doi:
        return None
    document = _get_json(constants.SCOPUS_ABSTRACT_URL + doi, _elsevier_headers(api_key), session)
    return _coredata_description(document, 'abstracts-retrieval-response')


def fetch_sciencedirect_abstract(doi: str, api_key: str,
                                 session: Optional[requests.Session] = None) -> Optional[str]:
    if not doi:
        return None
    document = _get_json(constants.SCIENCEDIRECT_ARTICLE_URL + doi, _elsevier_headers(api_key), session)
    return _coredata_description(document, 'full-text-retrieval-response')


def fetch_abstract(record: PaperRecord, api_key: str,
                   session: Optional[requests.Session] = None) -> PaperRecord:
    """Return the record with its abstract filled in from the first source that
    has one. Records that already have an abstract are returned unchanged, as
    are records no source knows about."""
    if record.abstract:
        return record
    abstract = fetch_crossref_abstract(record.doi, session)
    if not abstract:
        abstract = fetch_scopus_abstract(record.doi, api_key, session)
    if not abstract:
        abstract = fetch_sciencedirect_abstract(record.doi, api_key, session)
    if not abstract:
        logger.debug(f"No abstract found for {record.doi or record.title}")
        return record
    return record.with_abstract(abstract)
