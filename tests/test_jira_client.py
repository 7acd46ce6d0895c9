import pytest

from jira_rollup.core.errors import RetrievalFailure
from jira_rollup.core.jira_client import JiraAPI


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


class FakeClient:
    def __init__(self, session):
        self._session = session


def _api(*responses):
    api = JiraAPI.__new__(JiraAPI)
    api.server = "https://example.atlassian.net"
    api.client = FakeClient(FakeSession(responses))
    return api


def test_search_page_uses_offset_params():
    api = _api(FakeResponse(200, {"issues": [{"key": "A-1"}], "total": 7}))
    page = api.page_fetcher("project = A", ["summary", "status"], expand=["changelog"])(100, 50)
    assert page.total == 7
    assert page.items == [{"key": "A-1"}]
    url, params = api.client._session.calls[0]
    assert url.endswith("/rest/api/3/search")
    assert params == {
        "jql": "project = A",
        "startAt": 100,
        "maxResults": 50,
        "fields": "summary,status",
        "expand": "changelog",
    }


def test_http_error_raises_retrieval_failure():
    api = _api(FakeResponse(429, text="Too many requests"))
    with pytest.raises(RetrievalFailure) as info:
        api.search_page("project = A", 0, 50)
    assert info.value.status_code == 429


def test_transport_error_is_chained():
    api = _api(ConnectionError("reset"))
    with pytest.raises(RetrievalFailure) as info:
        api.search_page("project = A", 0, 50)
    assert isinstance(info.value.__cause__, ConnectionError)


def test_worklogs_follow_pagination():
    api = _api(
        FakeResponse(200, {"worklogs": [{"id": "1"}, {"id": "2"}], "total": 3}),
        FakeResponse(200, {"worklogs": [{"id": "3"}], "total": 3}),
    )
    assert [w["id"] for w in api.fetch_issue_worklogs("A-1")] == ["1", "2", "3"]
    assert api.client._session.calls[1][1]["startAt"] == 2


def test_time_tracking_config_falls_back_on_error():
    api = _api(FakeResponse(403, text="forbidden"))
    cfg = api.get_time_tracking_config()
    assert cfg["working_hours_per_day"] > 0
    api = _api(FakeResponse(200, {"workingHoursPerDay": 7, "workingDaysPerWeek": 4}))
    assert api.get_time_tracking_config() == {"working_hours_per_day": 7.0, "working_days_per_week": 4.0}
