from residentpulse.services.ai_parsing import Fallback, Parsed, parse_json_array, parse_json_object


def test_object_plain_and_fenced():
    assert parse_json_object('{"a": 1}') == Parsed({"a": 1})
    fenced = parse_json_object('```json\n{"is_critical": false}\n```')
    assert fenced.ok and fenced.value == {"is_critical": False}


def test_object_embedded_in_prose():
    r = parse_json_object('Sure! Here is the verdict: {"is_critical": true} Hope that helps.')
    assert r.ok
    assert r.value["is_critical"] is True


def test_object_garbage_falls_back_to_default():
    r = parse_json_object("I cannot comply", default={"x": 1})
    assert isinstance(r, Fallback)
    assert not r.ok
    assert r.value == {"x": 1}


def test_array_wrong_shape_falls_back_to_empty_list():
    r = parse_json_array('{"finding": "not a list"}')
    assert not r.ok
    assert r.value == []


def test_array_embedded():
    r = parse_json_array('Findings:\n[{"finding": "a"}, {"finding": "b"}]')
    assert r.ok
    assert len(r.value) == 2
