from datetime import datetime

from countarr.utils.json_fields import dumps, loads_dict, loads_list


def test_dumps_none_stays_null():
    assert dumps(None) is None


def test_dumps_stringifies_unknown_types():
    assert loads_dict(dumps({"added": datetime(2024, 1, 1)})) == {"added": "2024-01-01 00:00:00"}


def test_loads_wrong_shape_or_garbage():
    assert loads_list('{"a": 1}') == []
    assert loads_dict("[1, 2]") == {}
    assert loads_dict("{broken") == {}
    assert loads_list(None) == []
