import pytest
import requests

from notifications import ExpoPushClient, ExpoPushError, PushMessage, is_expo_push_token

TOKEN = "ExponentPushToken[abc123]"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, json_error=False):
        self.status_code = status_code
        self._payload = payload
        self._json_error = json_error

    def json(self):
        if self._json_error:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Records posts and answers with one ok ticket per message unless told otherwise."""

    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response
        self.error = error

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        if self.response is not None:
            return self.response
        return FakeResponse(payload={"data": [{"status": "ok", "id": f"t{i}"} for i in range(len(json))]})


def _client(session, **kwargs):
    return ExpoPushClient(base_url="https://push.test/send", session=session, **kwargs)


@pytest.mark.parametrize("token,valid", [
    (TOKEN, True),
    ("ExpoPushToken[xyz]", True),
    ("fcm-token", False),
    ("ExponentPushToken[]", False),
    (None, False),
])
def test_is_expo_push_token(token, valid):
    assert is_expo_push_token(token) is valid


def test_send_one_posts_payload_and_returns_ticket():
    session = FakeSession()
    client = _client(session, access_token="secret")

    ticket = client.send_one(TOKEN, "Order update", "On the way", {"order_id": "1"})

    assert ticket == {"status": "ok", "id": "t0"}
    call = session.calls[0]
    assert call["url"] == "https://push.test/send"
    assert call["json"][0]["to"] == TOKEN
    assert call["json"][0]["channelId"] == "default"
    assert call["json"][0]["data"] == {"order_id": "1"}
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["timeout"] == 5


def test_send_chunks_messages_by_one_hundred():
    session = FakeSession()
    messages = [PushMessage(to=TOKEN, title="t", body=str(i)) for i in range(250)]

    tickets = _client(session).send(messages)

    assert len(tickets) == 250
    assert [len(call["json"]) for call in session.calls] == [100, 100, 50]


def test_send_nothing_makes_no_request():
    session = FakeSession()

    assert _client(session).send([]) == []
    assert session.calls == []


def test_invalid_token_is_rejected_before_any_request():
    session = FakeSession()

    with pytest.raises(ExpoPushError):
        _client(session).send([PushMessage(to="not-a-token", title="t", body="b")])
    assert session.calls == []


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.ConnectionError("down")),
    FakeSession(response=FakeResponse(status_code=500, payload={})),
    FakeSession(response=FakeResponse(json_error=True)),
    FakeSession(response=FakeResponse(payload={"errors": [{"code": "PUSH_TOO_MANY_EXPERIENCE_IDS"}]})),
    FakeSession(response=FakeResponse(payload={"data": []})),
])
def test_gateway_failures_raise_expo_push_error(session):
    with pytest.raises(ExpoPushError):
        _client(session).send_one(TOKEN, "t", "b")


def test_error_ticket_raises_for_single_send():
    session = FakeSession(response=FakeResponse(payload={"data": [{"status": "error", "message": "DeviceNotRegistered"}]}))

    with pytest.raises(ExpoPushError, match="DeviceNotRegistered"):
        _client(session).send_one(TOKEN, "t", "b")
