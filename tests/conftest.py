from __future__ import annotations

import gzip

import pytest

from epg_bridge.services.fetch_types import FetchedDocument
from tests.helpers import SOURCE_A, SOURCE_B, XMLTV_A, XMLTV_B, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def documents() -> list[FetchedDocument]:
    return [
        FetchedDocument(source=SOURCE_A, text=XMLTV_A),
        FetchedDocument(source=SOURCE_B, text=XMLTV_B),
    ]


@pytest.fixture
def gzipped_a() -> bytes:
    return gzip.compress(XMLTV_A.encode("utf-8"))
