"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import datetime
from typing import Dict, List, Union

from fidematch.logger import get_logger, reset_logger
from fidematch.schema import Candidate
from fidematch.storage import MatchStore, MemoryKeyValueStore


@pytest.fixture(autouse=True)
def isolated_logger(tmp_path):
    """Give every test a fresh global logger writing under tmp_path."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    reset_logger()


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry backoff instant."""
    monkeypatch.setattr("fidematch.retry.time.sleep", lambda seconds: None)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 10, 19, 12, 0, 0))


@pytest.fixture
def memory_store(clock) -> MatchStore:
    return MatchStore(MemoryKeyValueStore(), clock=clock)


def player(fide_id: str, name: str, federation: str, standard: str = "", rapid: str = "", blitz: str = "") -> Candidate:
    return Candidate(
        fide_id=fide_id,
        name=name,
        federation=federation,
        standard=standard,
        rapid=rapid,
        blitz=blitz,
        birth_year="2012",
    )


class FakeRegistry:
    """
    Stands in for fetch + extract. ``results`` maps the exact term sent to the
    registry to its candidates, or to an exception the fetch should raise.
    """

    def __init__(self, results: Dict[str, Union[List[Candidate], Exception]]):
        self.results = results
        self.calls: List[str] = []

    async def fetch(self, term: str) -> str:
        self.calls.append(term)
        outcome = self.results.get(term, [])
        if isinstance(outcome, Exception):
            raise outcome
        return term

    def extract(self, markup: str) -> List[Candidate]:
        return list(self.results.get(markup, []))


@pytest.fixture
def sample_fide_html() -> str:
    """Search results page for 'Zhang' with two federations."""
    return """
    <html>
    <body>
    <table id="table_results" class="table">
        <thead>
            <tr><th>FIDE ID</th><th>Name</th><th>Title</th><th>Trainer Title</th>
                <th>Federation</th><th>Std.</th><th>Rpd.</th><th>Blz.</th><th>B-Year</th></tr>
        </thead>
        <tbody>
            <tr>
                <td>8612345</td><td><a href="/profile/8612345">Zhang, Wei</a></td><td>FM</td><td></td>
                <td><img src="/svg/CHN.svg">
                    CHN</td>
                <td>2301</td><td>2250</td><td></td><td>1999</td>
            </tr>
            <tr>
                <td>3256789</td><td><a href="/profile/3256789">Zhang, Kaylin</a></td><td></td><td></td>
                <td><img src="/svg/AUS.svg">
                    AUS</td>
                <td>1450</td><td></td><td>1388</td><td>2015</td>
            </tr>
        </tbody>
    </table>
    </body>
    </html>
    """
