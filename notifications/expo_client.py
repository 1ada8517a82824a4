#Purpose: The Expo push "adapter/client".
#Sole responsibility: talk to the Expo push service via HTTP and return normalized outputs.
#Encapsulates Expo-specific details:
#push token format (ExponentPushToken[...])
#message payload shape (sound, priority, channelId)
#chunking (Expo accepts at most 100 messages per request)
#timeouts/error handling
#parsing response JSON into tickets
#It should not contain order rules or decide who gets notified.


from dataclasses import dataclass, field
from dotenv import load_dotenv
import os
import re
from typing import Any, Dict, List, Optional
import requests

# Read Expo push endpoint from environment
# Example in .env:
# EXPO_PUSH_URL=https://exp.host/--/api/v2/push/send
load_dotenv()
EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_ACCESS_TOKEN = os.getenv("EXPO_ACCESS_TOKEN")

MAX_MESSAGES_PER_REQUEST = 100

_TOKEN_PATTERN = re.compile(r"^Expo(nent)?PushToken\[[^\]]+\]$")


class ExpoPushError(Exception):
    """Custom exception for Expo push client errors."""
    pass


def is_expo_push_token(token) -> bool:
    return isinstance(token, str) and bool(_TOKEN_PATTERN.match(token))


@dataclass
class PushMessage:
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: str = "default"
    priority: str = "high"
    channel_id: str = "default"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "sound": self.sound,
            "priority": self.priority,
            "channelId": self.channel_id,
        }


class ExpoPushClient:
    """
    Expo Adapter / Client

    Sole responsibility:
    - Talk to Expo via HTTP
    - Chunk messages into requests Expo accepts
    - Return one ticket per message, in message order

    """
    def __init__(self, base_url: Optional[str] = None, timeout: int = 5,
                 access_token: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url or EXPO_PUSH_URL
        self.timeout = timeout #seconds to wait for Expo before giving up
        self.access_token = access_token or EXPO_ACCESS_TOKEN
        self.session = session or requests.Session()

        if not self.base_url:
            raise ValueError("Expo push URL not set. Please set EXPO_PUSH_URL in the .env file.")

    #----------------
    # Internal helpers
    #----------------
    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _post_chunk(self, chunk: List[PushMessage]) -> List[Dict[str, Any]]:
        try:
            response = self.session.post(
                self.base_url,
                json=[message.to_payload() for message in chunk],
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ExpoPushError(f"Expo request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ExpoPushError(f"Expo error: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ExpoPushError("Expo returned a non JSON response") from exc

        if data.get("errors"):
            raise ExpoPushError(f"Expo error: {data['errors']}")

        tickets = data.get("data") or []
        if len(tickets) != len(chunk):
            raise ExpoPushError(f"Expo returned {len(tickets)} tickets for {len(chunk)} messages")
        return tickets

    #----------------
    # Public methods
    #----------------
    def send(self, messages: List[PushMessage]) -> List[Dict[str, Any]]:
        """
        Sends messages to Expo, MAX_MESSAGES_PER_REQUEST at a time.

        Returns the Expo tickets:
            [{"status": "ok", "id": "..."} | {"status": "error", "message": "...", "details": {...}}]
        """
        if not messages:
            return []

        for message in messages:
            if not is_expo_push_token(message.to):
                raise ExpoPushError(f"Push token {message.to!r} is not a valid Expo push token")

        tickets: List[Dict[str, Any]] = []
        for start in range(0, len(messages), MAX_MESSAGES_PER_REQUEST):
            tickets.extend(self._post_chunk(messages[start:start + MAX_MESSAGES_PER_REQUEST]))
        return tickets

    def send_one(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        (deviceToken, title, body, data) -> delivery receipt for one device.
        """
        ticket = self.send([PushMessage(to=token, title=title, body=body, data=data or {})])[0]
        if ticket.get("status") == "error":
            raise ExpoPushError(f"Expo rejected push to {token}: {ticket.get('message', 'unknown error')}")
        return ticket
