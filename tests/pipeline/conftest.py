from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

import pytest

from pipeline.models import RawItem
from pipeline_fakes import NOW, make_item


@pytest.fixture()
def cutoff() -> datetime:
    return NOW - timedelta(hours=1)


@pytest.fixture()
def items() -> List[RawItem]:
    return [make_item("A"), make_item("B"), make_item("C")]
