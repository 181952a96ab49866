from functools import partial
from typing import Callable, Iterable, List

from bs4 import BeautifulSoup, ParserRejectedMarkup

from ..config import DEFAULT_HOME_FEDERATION, DEFAULT_SEARCH_URL, Settings
from ..logger import get_logger
from ..normalize import normalize_federation
from ..schema import Candidate
from .common import fetch_with_error_handling

RESULTS_TABLE_ID = "table_results"

# The search endpoint only answers XHR-looking requests from a browser.
REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "X-Requested-With": "XMLHttpRequest",
}


def fetch_markup(term: str, search_url: str = DEFAULT_SEARCH_URL, timeout: float = 15.0) -> str:
    """Fetch the raw search results markup for a term.

    The term is sent exactly as given. Raises RegistryError on failure.
    """
    resp = fetch_with_error_handling(
        search_url,
        platform="fide",
        params={"search": term, "simple": 1},
        headers=REQUEST_HEADERS,
        timeout=timeout,
    )
    return resp.text


def make_fetcher(settings: Settings) -> Callable[[str], str]:
    return partial(fetch_markup, search_url=settings.search_url, timeout=settings.timeout)


def sort_candidates(candidates: Iterable[Candidate], home_federation: str = DEFAULT_HOME_FEDERATION) -> List[Candidate]:
    """Home federation first, then case-insensitive name order."""
    return sorted(candidates, key=lambda c: (c.federation != home_federation, c.name.casefold()))


def _text(cells, i: int) -> str:
    return cells[i].get_text().strip() if i < len(cells) else ""


def extract_candidates(markup: str, home_federation: str = DEFAULT_HOME_FEDERATION) -> List[Candidate]:
    """Parse the registry results table into sorted candidates.

    Returns an empty list when the markup has no results table.
    """
    if not isinstance(markup, str) or not markup.strip():
        return []
    try:
        soup = BeautifulSoup(markup, "html.parser")
    except ParserRejectedMarkup as e:
        get_logger().warning("Registry markup rejected by parser", error=str(e))
        return []

    table = soup.find(id=RESULTS_TABLE_ID)
    if table is None:
        return []

    body = table.find("tbody") or table
    candidates = []
    for tr in body.find_all("tr"):
        cells = tr.find_all("td")
        # Header rows and "no records" banners span fewer than two cells
        if len(cells) < 2:
            continue
        candidates.append(Candidate(
            fide_id=_text(cells, 0),
            name=_text(cells, 1),
            title=_text(cells, 2),
            trainer_title=_text(cells, 3),
            federation=normalize_federation(cells[4].get_text()) if len(cells) > 4 else "",
            standard=_text(cells, 5),
            rapid=_text(cells, 6),
            blitz=_text(cells, 7),
            birth_year=_text(cells, 8),
        ))

    get_logger().debug("Extracted registry candidates", count=len(candidates))
    return sort_candidates(candidates, home_federation)
