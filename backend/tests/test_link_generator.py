from types import SimpleNamespace

from copytrade.services.link_generator import generate_link


def test_link_from_slug():
    assert generate_link({"slug": "btc-100k"}) == "https://polymarket.com/event/btc-100k"


def test_missing_slug():
    assert generate_link({}) is None
    assert generate_link({"slug": ""}) is None
    assert generate_link({"slug": None}) is None


def test_object_with_slug_attribute():
    trade = SimpleNamespace(slug="election-2028")
    assert generate_link(trade) == "https://polymarket.com/event/election-2028"
    assert generate_link(SimpleNamespace()) is None
