import pytest
from regmux import Router, get_field, PatternError
from tests.conftest import MockHTTPProtocol, mock_scope

async def hello(s, p):
    p.response_str(200, [], "hello")

@pytest.mark.asyncio
async def test_probe_scenario():
    r = Router(); r.get("/", hello)
    p = MockHTTPProtocol(); await r.__rsgi__(mock_scope("/", "GET"), p); assert p.response_status == 200
    p = MockHTTPProtocol(); await r.__rsgi__(mock_scope("/", "POST"), p); assert p.response_status == 405 and p.header("allow") == "GET"
    p = MockHTTPProtocol(); await r.__rsgi__(mock_scope("/missing", "GET"), p); assert p.response_status == 404

def test_probe_bad_pattern_unchanged():
    r = Router()
    with pytest.raises(PatternError):
        r.get("/(", hello)
    assert r.routes == ()

def test_probe_negative_index():
    r = Router(); r.get("/u/([0-9]+)", hello)
    assert get_field(object(), -1) == ""
