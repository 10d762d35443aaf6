"""Streaming clients for the supported completion providers.

Every provider answers a POST with a server-sent-event body made of
``data: <json>`` lines. The adapters differ only in how the request is
shaped and where the text delta lives in each event, so the four of them
share one line-buffered decoder.
"""

from __future__ import annotations

import codecs
import contextlib
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol

import httpx

from .errors import ProviderError
from .models import ChatMessage

logger = logging.getLogger(__name__)

MAX_TOKENS = 1024
DATA_PREFIX = "data:"


class ProviderKind(str, Enum):
    GROQ = "groq"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


# Fallback order used when the preferred provider has no key.
PROVIDER_PRIORITY = (
    ProviderKind.GROQ,
    ProviderKind.GEMINI,
    ProviderKind.ANTHROPIC,
    ProviderKind.OPENAI,
)


@dataclass
class Conversation:
    """System instruction plus alternating user/assistant turns."""

    system: str
    messages: List[ChatMessage] = field(default_factory=list)


@dataclass
class ProviderRequest:
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


class ProviderAdapter(Protocol):
    """Request builder and event decoder for one provider."""

    kind: ProviderKind
    default_model: str
    terminator: Optional[str]

    def build_request(
        self, conversation: Conversation, credential: str, model: str
    ) -> ProviderRequest:
        """Return the HTTP request for a streamed completion."""

    def decode_event(self, payload: Dict[str, Any]) -> Optional[str]:
        """Return the text delta carried by one event, if any."""


@dataclass(frozen=True)
class OpenAIChatAdapter:
    """OpenAI chat-completions wire format, also spoken by Groq."""

    kind: ProviderKind
    endpoint: str
    default_model: str
    terminator: Optional[str] = "[DONE]"

    def build_request(
        self, conversation: Conversation, credential: str, model: str
    ) -> ProviderRequest:
        messages = []
        if conversation.system:
            messages.append({"role": "system", "content": conversation.system})
        messages.extend(message.to_dict() for message in conversation.messages)
        return ProviderRequest(
            url=self.endpoint,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {credential}",
            },
            body={
                "model": model,
                "max_tokens": MAX_TOKENS,
                "messages": messages,
                "stream": True,
            },
        )

    def decode_event(self, payload: Dict[str, Any]) -> Optional[str]:
        try:
            return payload["choices"][0]["delta"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            return None


@dataclass(frozen=True)
class AnthropicAdapter:
    """Anthropic messages API; the system prompt is a top-level field."""

    kind: ProviderKind = ProviderKind.ANTHROPIC
    endpoint: str = "https://api.anthropic.com/v1/messages"
    default_model: str = "claude-3-haiku-20240307"
    api_version: str = "2023-06-01"
    terminator: Optional[str] = None

    def build_request(
        self, conversation: Conversation, credential: str, model: str
    ) -> ProviderRequest:
        body: Dict[str, Any] = {
            "model": model,
            "max_tokens": MAX_TOKENS,
            "messages": [message.to_dict() for message in conversation.messages],
            "stream": True,
        }
        if conversation.system:
            body["system"] = conversation.system
        return ProviderRequest(
            url=self.endpoint,
            headers={
                "Content-Type": "application/json",
                "x-api-key": credential,
                "anthropic-version": self.api_version,
            },
            body=body,
        )

    def decode_event(self, payload: Dict[str, Any]) -> Optional[str]:
        if payload.get("type") != "content_block_delta":
            return None
        delta = payload.get("delta") or {}
        return delta.get("text")


@dataclass(frozen=True)
class GeminiAdapter:
    """Gemini streamGenerateContent in SSE mode.

    Gemini gets the system instruction folded into the first user turn, and
    its stream ends without a sentinel line.
    """

    kind: ProviderKind = ProviderKind.GEMINI
    base_url: str = "https://generativelanguage.googleapis.com"
    default_model: str = "gemini-2.0-flash"
    terminator: Optional[str] = None

    def build_request(
        self, conversation: Conversation, credential: str, model: str
    ) -> ProviderRequest:
        contents = []
        system_pending = bool(conversation.system)
        for message in conversation.messages:
            text = message.content
            if system_pending and message.role == "user":
                text = f"{conversation.system}\n\n{text}"
                system_pending = False
            contents.append(
                {
                    "role": "model" if message.role == "assistant" else "user",
                    "parts": [{"text": text}],
                }
            )
        return ProviderRequest(
            url=(
                f"{self.base_url}/v1beta/models/{model}"
                ":streamGenerateContent?alt=sse"
            ),
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": credential,
            },
            body={
                "contents": contents,
                "generationConfig": {"maxOutputTokens": MAX_TOKENS},
            },
        )

    def decode_event(self, payload: Dict[str, Any]) -> Optional[str]:
        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return None
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        return text or None


ADAPTERS: Dict[ProviderKind, ProviderAdapter] = {
    ProviderKind.GROQ: OpenAIChatAdapter(
        kind=ProviderKind.GROQ,
        endpoint="https://api.groq.com/openai/v1/chat/completions",
        default_model="llama-3.3-70b-versatile",
    ),
    ProviderKind.GEMINI: GeminiAdapter(),
    ProviderKind.ANTHROPIC: AnthropicAdapter(),
    ProviderKind.OPENAI: OpenAIChatAdapter(
        kind=ProviderKind.OPENAI,
        endpoint="https://api.openai.com/v1/chat/completions",
        default_model="gpt-4o-mini",
    ),
}


def get_adapter(kind: ProviderKind) -> ProviderAdapter:
    return ADAPTERS[ProviderKind(kind)]


class LineBuffer:
    """Splits a byte stream into complete lines.

    Bytes are decoded incrementally so a multi-byte character split across
    reads is not mangled; an unterminated trailing line is carried over to
    the next ``feed`` call.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, data: bytes) -> List[str]:
        self._pending += self._decoder.decode(data)
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        """Return whatever is left once the stream has ended."""
        rest = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        rest = rest.rstrip("\r")
        return [rest] if rest.strip() else []


def error_message(payload: Any) -> Optional[str]:
    """Return the message of a provider error payload, if it is one."""
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("type") or "Unknown provider error"
    if isinstance(error, str):
        return error
    return None


def decode_line(adapter: ProviderAdapter, line: str) -> Optional[str]:
    """Return the text delta of one SSE line; framing noise yields None."""
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX) :].strip()
    if not data or (adapter.terminator and data == adapter.terminator):
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Ignoring undecodable %s line: %r", adapter.kind.value, data)
        return None

    message = error_message(payload)
    if message:
        raise ProviderError(adapter.kind.value, message)
    if not isinstance(payload, dict):
        return None
    return adapter.decode_event(payload)


async def iter_completion(
    kind: ProviderKind,
    client: httpx.AsyncClient,
    conversation: Conversation,
    credential: str,
    model: Optional[str] = None,
) -> AsyncIterator[str]:
    """Yield text chunks as the provider streams them.

    The response stays open until the generator finishes or is closed. A
    consumer that stops early should close it with ``aclose()`` or
    ``contextlib.aclosing``.
    """
    adapter = get_adapter(kind)
    model = model or adapter.default_model
    request = adapter.build_request(conversation, credential, model)
    logger.info("Streaming completion from %s (%s)", adapter.kind.value, model)

    try:
        async with client.stream(
            "POST", request.url, headers=request.headers, json=request.body
        ) as response:
            if not response.is_success:
                body = await response.aread()
                raise ProviderError(
                    adapter.kind.value,
                    _status_message(body, response.status_code),
                    status=response.status_code,
                )

            buffer = LineBuffer()
            async for data in response.aiter_bytes():
                for line in buffer.feed(data):
                    delta = decode_line(adapter, line)
                    if delta:
                        yield delta
            for line in buffer.flush():
                delta = decode_line(adapter, line)
                if delta:
                    yield delta
    except httpx.HTTPError as exc:
        raise ProviderError(adapter.kind.value, f"Network error: {exc}") from exc


async def stream_complete(
    kind: ProviderKind,
    client: httpx.AsyncClient,
    conversation: Conversation,
    credential: str,
    model: Optional[str],
    on_chunk: Callable[[str], Any],
) -> str:
    """Deliver every chunk to ``on_chunk`` and return the full text."""
    chunks = []
    stream = iter_completion(kind, client, conversation, credential, model)
    async with contextlib.aclosing(stream):
        async for chunk in stream:
            chunks.append(chunk)
            on_chunk(chunk)
    return "".join(chunks)


def _status_message(body: bytes, status: int) -> str:
    try:
        message = error_message(json.loads(body))
    except (json.JSONDecodeError, UnicodeDecodeError):
        message = None
    return message or f"API error: {status}"
