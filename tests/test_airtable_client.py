import threading

import pytest

from storecore.services.airtable_client import AirtableClient, AirtableError


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {"records": []}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FakeHTTP:
    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []
        self.gate = None
        self.entered = threading.Event()

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.responses:
            return self.responses.pop(0)
        return FakeResponse(payload={"records": [{"id": "rec1", "fields": {}}]})


class FakeClock:
    def __init__(self):
        self.now = 1000.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def make_client(http, clock=None, **kwargs):
    clock = clock or FakeClock()
    return AirtableClient("key", "base", http=http, clock=clock, sleep=clock.sleep, **kwargs)


def test_reads_are_cached():
    http = FakeHTTP()
    client = make_client(http)
    first = client.list_records("tbl", {"filterByFormula": "{featured}=TRUE()"})
    second = client.list_records("tbl", {"filterByFormula": "{featured}=TRUE()"})
    assert first == second
    assert len(http.requests) == 1


def test_cache_expires_after_ttl():
    http = FakeHTTP()
    clock = FakeClock()
    client = make_client(http, clock, cache_ttl=60, request_delay=0)
    client.list_records("tbl")
    clock.now += 61
    client.list_records("tbl")
    assert len(http.requests) == 2


def test_uncached_read_always_fetches():
    http = FakeHTTP()
    client = make_client(http, request_delay=0)
    client.list_records("tbl", use_cache=False)
    client.list_records("tbl", use_cache=False)
    assert len(http.requests) == 2


def test_requests_are_spaced_by_delay():
    http = FakeHTTP()
    clock = FakeClock()
    client = make_client(http, clock, request_delay=2.0)
    client.list_records("a")
    client.list_records("b")
    assert clock.sleeps == [2.0]


def test_rate_limit_returns_empty_list():
    http = FakeHTTP([FakeResponse(429, {"error": "rate"})])
    client = make_client(http)
    assert client.list_records("tbl") == []


def test_other_errors_raise():
    http = FakeHTTP([FakeResponse(500, {"error": "boom"})])
    client = make_client(http)
    with pytest.raises(AirtableError) as exc:
        client.list_records("tbl")
    assert exc.value.status_code == 500


def test_follows_offset_pages():
    http = FakeHTTP(
        [
            FakeResponse(payload={"records": [{"id": "r1"}], "offset": "next"}),
            FakeResponse(payload={"records": [{"id": "r2"}]}),
        ]
    )
    client = make_client(http, request_delay=0)
    records = client.list_records("tbl")
    assert [r["id"] for r in records] == ["r1", "r2"]
    assert http.requests[1][2]["params"]["offset"] == "next"


def test_identical_inflight_reads_share_one_call():
    http = FakeHTTP()
    http.gate = threading.Event()
    client = make_client(http, request_delay=0)
    results = []

    def read():
        results.append(client.list_records("tbl"))

    first = threading.Thread(target=read)
    first.start()
    assert http.entered.wait(5)
    second = threading.Thread(target=read)
    second.start()
    http.gate.set()
    first.join(5)
    second.join(5)

    assert len(http.requests) == 1
    assert len(results) == 2
    assert results[0] == results[1]


def test_missing_credentials():
    client = AirtableClient("", "", http=FakeHTTP())
    assert not client.configured
    with pytest.raises(AirtableError):
        client.list_records("tbl")


def test_find_first_raises_on_rate_limit():
    http = FakeHTTP([FakeResponse(429, {"error": "rate"})])
    client = make_client(http)
    with pytest.raises(AirtableError):
        client.find_first("tbl", "{checkoutid}='CHK-1'")


def test_unexpected_error_is_shared_with_waiting_readers():
    http = FakeHTTP([FakeResponse(payload=["not", "a", "page"]), FakeResponse(payload=["not", "a", "page"])])
    http.gate = threading.Event()
    client = make_client(http, request_delay=0)
    errors = []

    def read():
        try:
            client.list_records("tbl")
        except Exception as exc:
            errors.append(type(exc))

    first = threading.Thread(target=read)
    first.start()
    assert http.entered.wait(5)
    second = threading.Thread(target=read)
    second.start()
    http.gate.set()
    first.join(5)
    second.join(5)

    assert not first.is_alive() and not second.is_alive()
    assert errors == [AttributeError, AttributeError]
