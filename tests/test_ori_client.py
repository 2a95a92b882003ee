from types import SimpleNamespace

import pytest
import requests

from priordeed.clients.ori_client import ORIClient, ORIError, party_names, record_date_text, record_timestamp


class FakeSession:
    def __init__(self, post_data=None, get_response=None, post_error=None):
        self.post_data = post_data
        self.get_response = get_response
        self.post_error = post_error
        self.posts = []
        self.gets = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append(json)
        if self.post_error:
            raise self.post_error
        return SimpleNamespace(raise_for_status=lambda: None, json=lambda: self.post_data)

    def get(self, url, headers=None, timeout=None):
        self.gets.append(url)
        return self.get_response or SimpleNamespace(status_code=200, content=b"")


def test_book_page_search_payload():
    session = FakeSession(post_data={"ResultList": [{"ID": "X1"}]})
    client = ORIClient(session=session)

    rows = client.search_by_book_page("12345", "678")

    assert rows == [{"ID": "X1"}]
    assert session.posts[0] == {"BookPageBegin": "12345/678", "BookPageEnd": "12345/678"}
    # Landing page primed once before the first search
    assert session.gets == [ORIClient.LANDING_URL]


def test_instrument_search_has_no_doc_type_filter():
    session = FakeSession(post_data={"ResultList": []})

    assert ORIClient(session=session).search_by_instrument("2021123456") == []
    payload = session.posts[0]
    assert payload["Instrument"] == "2021123456"
    assert "DocType" not in payload


def test_party_search_sorted_newest_first():
    rows = [
        {"ID": "old", "RecordDate": "01/02/2005 10:00 AM"},
        {"ID": "new", "RecordDate": 1600000000},
        {"ID": "mid", "RecordDate": "06/30/2012"},
    ]
    session = FakeSession(post_data={"ResultList": rows})

    result = ORIClient(session=session).search_deeds_by_party("DOE JANE")

    assert [r["ID"] for r in result] == ["new", "mid", "old"]
    assert session.posts[0]["DocType"] == ORIClient.DEED_DOC_TYPES
    assert session.posts[0]["Party"] == "DOE JANE"


def test_search_failure_raises():
    session = FakeSession(post_error=requests.ConnectionError("down"))

    with pytest.raises(ORIError, match="ORI search failed"):
        ORIClient(session=session).search_by_instrument("1")


def test_download_pdf():
    session = FakeSession(get_response=SimpleNamespace(status_code=200, content=b"%PDF-1.4 data"))
    client = ORIClient(session=session)

    assert client.download_pdf("abc/123") == b"%PDF-1.4 data"
    assert session.gets[-1].endswith("/Watermark/abc%2F123")


def test_download_pdf_missing_and_errors():
    missing = ORIClient(session=FakeSession(get_response=SimpleNamespace(status_code=404, content=b"")))
    assert missing.download_pdf("1") is None

    broken = ORIClient(session=FakeSession(get_response=SimpleNamespace(status_code=500, content=b"")))
    with pytest.raises(ORIError, match="HTTP 500"):
        broken.download_pdf("1")


def test_record_date_helpers():
    assert record_timestamp({"RecordDate": 86400}) == 86400.0
    assert record_date_text({"RecordDate": "03/15/2019 09:12 AM"}) == "2019-03-15"
    assert record_timestamp({"RecordDate": "not a date"}) is None
    assert record_date_text({}) is None


def test_party_names_accepts_strings_and_dicts():
    row = {"PartiesTwo": [{"Name": " DOE JANE "}, "DOE JOHN", {"Name": ""}], "PartiesOne": "SMITH BOB"}

    assert party_names(row, "PartiesTwo") == ["DOE JANE", "DOE JOHN"]
    assert party_names(row, "PartiesOne") == ["SMITH BOB"]
    assert party_names(row, "Missing") == []
