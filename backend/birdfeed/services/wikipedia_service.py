"""
Bird Feed Backend — Wikipedia Bird Lookup
==========================================

What:  Fills in scientific name and a short description for a species
       from the English Wikipedia article intro.
How:   MediaWiki query API (extracts + pageprops) over httpx, retried with
       tenacity. Several title variants are tried because Wikipedia uses
       sentence case ("Red-breasted nuthatch") and sometimes disambiguates
       with a " (bird)" suffix.
Who:   GET /api/birds/lookup, used by the "add species" form.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from birdfeed.config import settings

logger = logging.getLogger(__name__)

_APOSTROPHE_RE = re.compile("[’‘`´]")
_PAREN_BINOMIAL_RE = re.compile(r"\(([A-Z][a-z]+ [a-z]+(?:\s+[a-z]+)?)\)")
_IS_A_SPECIES_RE = re.compile(
    r"([A-Z][a-z]+\s[a-z]+(?:\s[a-z]+)?)\s+is\s+a\s+(?:species|bird)",
    re.IGNORECASE,
)
_BINOMIAL_PREFIX_RE = re.compile(r"^[A-Z][a-z]+\s[a-z]+")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
_WORD_SPLIT_RE = re.compile(r"(\s+|-)")

DESCRIPTION_MAX_CHARS = 500
DESCRIPTION_MIN_CHARS = 150


def normalize_apostrophes(name: str) -> str:
    return _APOSTROPHE_RE.sub("'", name)


def to_wikipedia_case(name: str) -> str:
    """'Red-Breasted Nuthatch' -> 'Red-breasted nuthatch'."""
    parts = _WORD_SPLIT_RE.split(name)
    out = []
    for index, part in enumerate(parts):
        if part == " " or part == "-":
            out.append(part)
        elif index == 0:
            out.append(part[:1].upper() + part[1:].lower())
        else:
            out.append(part.lower())
    return "".join(out)


def title_variants(common_name: str) -> List[str]:
    """Titles to try, in order, without duplicates."""
    normalized = normalize_apostrophes(common_name)
    wiki_case = to_wikipedia_case(normalized)
    candidates = [normalized, wiki_case, f"{normalized} (bird)", f"{wiki_case} (bird)"]
    return list(dict.fromkeys(candidates))


def extract_scientific_name(extract: str) -> Optional[str]:
    """
    Finds the binomial in an article intro.

    Tries "(Genus species)" first, then "Genus species is a species/bird".
    """
    match = _PAREN_BINOMIAL_RE.search(extract)
    if match:
        return match.group(1)

    match = _IS_A_SPECIES_RE.search(extract)
    if match and _BINOMIAL_PREFIX_RE.match(match.group(1)):
        return match.group(1)
    return None


def extract_description(extract: str) -> Optional[str]:
    """
    Complete sentences from the intro, about 150-500 characters.

    Stops once the text reaches 150 characters, and never adds a sentence
    that would push a non-empty description past 500.
    """
    if not extract:
        return None

    desc = ""
    for sentence in _SENTENCE_SPLIT_RE.split(extract):
        sentence = sentence.strip()
        if desc and len(desc) + len(sentence) > DESCRIPTION_MAX_CHARS:
            break
        desc = f"{desc} {sentence}" if desc else sentence
        if not desc.endswith((".", "!", "?")):
            desc += "."
        if len(desc) >= DESCRIPTION_MIN_CHARS:
            break

    return desc.strip() or None


class WikipediaService:
    """Looks up bird species on Wikipedia."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url or settings.wikipedia_api_url
        self.transport = transport

    async def lookup(self, common_name: str) -> Optional[Dict[str, Any]]:
        """
        Returns {common_name, scientific_name, description, source} or None.

        Upstream failures are logged and treated as "not found"; the lookup
        is a convenience and never blocks creating a species.
        """
        try:
            for title in title_variants(common_name):
                page = await self._fetch_page(title)
                if page and page.get("extract"):
                    extract = page["extract"]
                    return {
                        "common_name": common_name,
                        "scientific_name": extract_scientific_name(extract),
                        "description": extract_description(extract),
                        "source": "wikipedia",
                    }
        except httpx.HTTPError as e:
            logger.warning("Wikipedia lookup failed for '%s': %s", common_name, str(e))
        return None

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=settings.retry_jitter,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch_page(self, title: str) -> Optional[Dict[str, Any]]:
        """One page for an exact title, or None when it does not exist."""
        params = {
            "action": "query",
            "format": "json",
            "prop": "extracts|pageprops",
            "exintro": "true",
            "explaintext": "true",
            "exsentences": "3",
            "titles": title,
            "redirects": "1",
        }
        async with httpx.AsyncClient(
            timeout=settings.wikipedia_timeout,
            transport=self.transport,
            headers={"User-Agent": "BirdFeed/1.0 (species lookup)"},
        ) as client:
            response = await client.get(self.api_url, params=params)

        if response.status_code != 200:
            logger.debug("Wikipedia returned %d for '%s'", response.status_code, title)
            return None

        try:
            pages = (response.json().get("query") or {}).get("pages") or {}
        except ValueError:
            return None
        if not pages:
            return None

        page = next(iter(pages.values()))
        if not page or page.get("pageid") in (None, -1) or "missing" in page:
            return None
        return page


wikipedia_service = WikipediaService()
