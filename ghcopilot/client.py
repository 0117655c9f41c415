from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import BaseModel, Field
from requests.adapters import HTTPAdapter

from ghcopilot.cancel import CancelToken
from ghcopilot.config import HttpConfig
from ghcopilot.credentials import get_github_token
from ghcopilot.pipeline import stream_response
from ghcopilot.terminal_renderer import TerminalRenderer

logger = logging.getLogger(__name__)

API_BASE = "https://api.githubcopilot.com"
GITHUB_API = "https://api.github.com"

TOKEN_URL = GITHUB_API + "/copilot_internal/v2/token"
CHAT_URL = API_BASE + "/chat/completions"

TOKEN_TIMEOUT = 10.0


class ApiError(RuntimeError):
    """The Copilot API answered with something other than 200 OK."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def default_headers() -> dict[str, str]:
    return {
        "Editor-Version": "vscode/1.100.2",
        "Copilot-Integration-Id": "vscode-chat",
    }


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    """Body of a chat completion request.

    Optional fields left as None are omitted from the JSON payload. `o1`
    models reject `n`, `top_p` and `stream`, so those stay unset for them.
    """

    messages: list[ChatMessage] = Field(default_factory=list)
    model: str
    n: int | None = None
    top_p: float | None = None
    stream: bool | None = None

    @classmethod
    def for_model(cls, prompts: list[str], model: str) -> "ChatRequest":
        request = cls(
            messages=[ChatMessage(role="user", content=p) for p in prompts],
            model=model,
        )
        if not model.startswith("o1"):
            request.n = 1
            request.top_p = 1
            request.stream = True
        return request

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CopilotClient:
    """HTTP client for the Copilot chat API.

    Build one per invocation and pass it around; it owns the connection pool.
    """

    def __init__(self, http: HttpConfig | None = None, session: requests.Session | None = None) -> None:
        self.http = http or HttpConfig()
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_maxsize=self.http.max_idle_conns)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

    def close(self) -> None:
        self.session.close()

    def _transport_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.http.disable_compression:
            headers["Accept-Encoding"] = "identity"
        if self.http.disable_keep_alives:
            headers["Connection"] = "close"
        return headers

    def _timeout(self, cancel_token: CancelToken | None, read_timeout: float) -> tuple[float, float]:
        # The deadline bounds every blocking read; cancellation alone can't
        # interrupt one.
        remaining = cancel_token.remaining() if cancel_token is not None else None
        if remaining is not None:
            read_timeout = min(read_timeout, remaining)
        return self.http.dial_context_timeout, max(read_timeout, 0.001)

    def fetch_headers(self, github_token: str, cancel_token: CancelToken | None = None) -> dict[str, str]:
        """Exchange the GitHub OAuth token for a Copilot API token."""

        headers = default_headers()
        resp = self.session.get(
            TOKEN_URL,
            headers={**headers, **self._transport_headers(), "Authorization": "Token " + github_token},
            timeout=self._timeout(cancel_token, TOKEN_TIMEOUT),
        )
        with resp:
            if resp.status_code != 200:
                raise ApiError(
                    f"token request failed with status code: {resp.status_code}",
                    status_code=resp.status_code,
                )
            try:
                token = resp.json().get("token")
            except ValueError as e:
                raise ApiError(f"failed to decode response: {e}") from e

        if not token:
            raise ApiError("received empty token in response")

        headers["Authorization"] = "Bearer " + token
        return headers

    def open_chat_stream(
        self,
        request: ChatRequest,
        headers: dict[str, str],
        cancel_token: CancelToken | None = None,
    ) -> requests.Response:
        resp = self.session.post(
            CHAT_URL,
            json=request.to_payload(),
            headers={
                **headers,
                **self._transport_headers(),
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
            },
            stream=True,
            timeout=self._timeout(cancel_token, self.http.http_client_timeout),
        )
        if resp.status_code != 200:
            try:
                body = resp.text
            finally:
                resp.close()
            raise ApiError(
                f"API request failed with status {resp.status_code}: {body}",
                status_code=resp.status_code,
            )
        return resp

    def ask(
        self,
        prompts: list[str],
        model: str,
        renderer: TerminalRenderer,
        cancel_token: CancelToken,
        github_token: str | None = None,
    ) -> None:
        """Send `prompts` and stream the answer through `renderer`."""

        if github_token is None:
            github_token = get_github_token()

        cancel_token.check()
        headers = self.fetch_headers(github_token, cancel_token)

        request = ChatRequest.for_model(prompts, model)
        logger.debug("sending %d message(s) to %s", len(request.messages), model)

        cancel_token.check()
        resp = self.open_chat_stream(request, headers, cancel_token)
        with resp:
            stream_response(resp.iter_content(chunk_size=None), renderer, cancel_token)
