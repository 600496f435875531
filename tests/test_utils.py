import threading

import pytest

from nfe_ingest.core.utils import KeyedLocks, parse_brl_number, sanitize_url


def test_keyed_locks_are_released_after_use():
    locks = KeyedLocks()

    with locks.hold("p1"):
        with locks.hold("p1"):
            assert len(locks) == 1
        with locks.hold("p2"):
            assert len(locks) == 2

    assert len(locks) == 0


def test_keyed_locks_serialize_the_same_key():
    locks = KeyedLocks()
    counter = {"value": 0}

    def bump():
        for _ in range(200):
            with locks.hold("p1"):
                current = counter["value"]
                counter["value"] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter["value"] == 800
    assert len(locks) == 0


@pytest.mark.parametrize(
    "raw, expected",
    [("1.234,56", 1234.56), ("19,40", 19.40), ("19.40", 19.40), (None, 0.0)],
)
def test_parse_brl_number(raw, expected):
    assert parse_brl_number(raw) == pytest.approx(expected)


def test_sanitize_url_keeps_origin_and_path():
    assert sanitize_url("https://sat.sef.sc.gov.br/nfce/consulta?p=1&token=x") == "https://sat.sef.sc.gov.br/nfce/consulta"
