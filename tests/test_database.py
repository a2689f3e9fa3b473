from datetime import date
from unittest.mock import MagicMock

import pytest

from countarr.database import insert_ignore
from countarr.models import IndexerStat


def test_insert_ignore_skips_duplicate(db):
    values = {"indexer_name": "NZBgeek", "date": date(2026, 1, 7), "searches": 10}

    assert insert_ignore(db, IndexerStat, values) is True
    assert insert_ignore(db, IndexerStat, dict(values, searches=99)) is False
    db.commit()

    [row] = db.query(IndexerStat).all()
    assert row.searches == 10


def test_insert_ignore_unsupported_dialect():
    db = MagicMock()
    db.get_bind.return_value.dialect.name = "mysql"

    with pytest.raises(ValueError, match="mysql"):
        insert_ignore(db, IndexerStat, {"indexer_name": "NZBgeek", "date": date(2026, 1, 7)})
