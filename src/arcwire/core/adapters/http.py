"""HTTP transport shared by the provider adapters."""

from __future__ import annotations

import abc
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional

import httpx

from ..errors import AdapterError, ConfigurationError, ProviderHTTPError
from ..message import Message
from .base import (
    CancelToken,
    ModelAdapter,
    ModelResponse,
    Notify,
    PromptRequest,
    PromptResult,
    emit,
    until_cancelled,
)
from .stream import DoneEvent, StreamDecoder, TextDeltaEvent, ToolUseEvent, decode_stream

if TYPE_CHECKING:
    from .registry import ProviderDef

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=180.0, write=30.0, pool=10.0)

MISSING_API_KEY_MESSAGE = "No API key configured. Go to Settings -> AI Provider to add one."


class HTTPModelAdapter(ModelAdapter):
    """Adapter that speaks one provider protocol over HTTPS.

    Subclasses supply the endpoint, headers, payload builder, response parser
    and stream decoder. This class owns the request lifecycle: the sync path
    issues one POST and parses the JSON body; the streaming path decodes the
    server-sent events as they arrive and forwards them to ``notify``.
    """

    def __init__(
        self,
        provider: ProviderDef,
        api_key: str,
        model: str,
        *,
        max_tokens: int,
        streaming: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ) -> None:
        self.provider = provider
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.streaming = streaming
        self._transport = transport
        self._timeout = timeout
        self._system_prompt = ""
        self.name = f"{provider.id}:{model}"

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def set_system_prompt(self, text: str) -> None:
        self._system_prompt = text or ""

    @property
    def error_label(self) -> str:
        return self.model

    @abc.abstractmethod
    def endpoint(self) -> str:
        """Absolute URL of the completion endpoint."""

    @abc.abstractmethod
    def headers(self) -> dict[str, str]:
        """Request headers, including credentials."""

    @abc.abstractmethod
    def build_payload(self, request: PromptRequest, *, stream: bool) -> dict[str, Any]:
        """JSON body for one prompt."""

    @abc.abstractmethod
    def parse_response(self, payload: Mapping[str, Any]) -> ModelResponse:
        """Convert a non-streaming JSON body to a :class:`ModelResponse`."""

    @abc.abstractmethod
    def new_decoder(self) -> StreamDecoder:
        """Fresh decoder for one streaming response."""

    async def prompt(
        self,
        request: PromptRequest | Sequence[Message],
        notify: Optional[Notify] = None,
        cancel: CancelToken | None = None,
    ) -> PromptResult:
        if not isinstance(request, PromptRequest):
            request = PromptRequest(messages=tuple(request))
        if not self.api_key:
            raise ConfigurationError(MISSING_API_KEY_MESSAGE)

        LOGGER.info(
            "prompting %s (model=%s, streaming=%s, messages=%d)",
            self.provider.id,
            self.model,
            self.streaming,
            len(request.messages),
        )
        try:
            if self.streaming:
                return await self._prompt_streaming(request, notify, cancel)
            return await self._prompt_sync(request, notify, cancel)
        except httpx.TransportError as exc:
            msg = f"{self.provider.name} request failed: {exc}"
            raise AdapterError(msg) from exc

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def _prompt_sync(
        self,
        request: PromptRequest,
        notify: Optional[Notify],
        cancel: CancelToken | None,
    ) -> PromptResult:
        payload = self.build_payload(request, stream=False)
        LOGGER.debug("sending %d messages to %s", len(payload.get("messages", ())), self.endpoint())

        async with self._client() as client:
            response = await until_cancelled(
                client.post(self.endpoint(), json=payload, headers=self.headers()),
                cancel,
            )
            if response is None:
                LOGGER.warning("prompt to %s cancelled before a response arrived", self.provider.id)
                return PromptResult(messages=(), cancelled=True)
            self._raise_for_status(response.status_code, response.text)
            try:
                body = response.json()
            except ValueError as exc:
                msg = f"{self.provider.name} returned a body that is not JSON"
                raise AdapterError(msg) from exc

        if not isinstance(body, Mapping):
            msg = f"{self.provider.name} returned an unexpected response shape"
            raise AdapterError(msg)
        parsed = self.parse_response(body)
        await emit(notify, "model_response", _response_payload(parsed.message))
        LOGGER.info("completed with %d tokens in, %d tokens out", parsed.tokens_in, parsed.tokens_out)
        return PromptResult(
            messages=(parsed.message,),
            tokens_in=parsed.tokens_in,
            tokens_out=parsed.tokens_out,
        )

    async def _prompt_streaming(
        self,
        request: PromptRequest,
        notify: Optional[Notify],
        cancel: CancelToken | None,
    ) -> PromptResult:
        payload = self.build_payload(request, stream=True)
        decoder = self.new_decoder()
        done: DoneEvent | None = None
        partial_text: list[str] = []

        async with self._client() as client:
            http_request = client.build_request(
                "POST", self.endpoint(), json=payload, headers=self.headers()
            )
            response = await until_cancelled(client.send(http_request, stream=True), cancel)
            if response is None:
                LOGGER.warning("prompt to %s cancelled before the stream opened", self.provider.id)
                return PromptResult(messages=(), cancelled=True)

            try:
                if response.is_error:
                    body = await response.aread()
                    self._raise_for_status(response.status_code, body.decode("utf-8", errors="replace"))

                async for event in decode_stream(response.aiter_bytes(), decoder, cancel=cancel):
                    if isinstance(event, TextDeltaEvent):
                        partial_text.append(event.text)
                        await emit(notify, "text_delta", {"text": event.text})
                    elif isinstance(event, ToolUseEvent):
                        LOGGER.info("tool_use %s (%s)", event.name, event.id)
                        await emit(
                            notify,
                            "tool_use",
                            {"id": event.id, "name": event.name, "input": event.input},
                        )
                    elif isinstance(event, DoneEvent):
                        done = event
            finally:
                await response.aclose()

        if done is None:
            text = "".join(partial_text)
            messages = (Message.agent(text),) if text else ()
            return PromptResult(messages=messages, cancelled=True)

        await emit(notify, "model_response_complete", _response_payload(done.message))
        LOGGER.info("completed with %d tokens in, %d tokens out", done.tokens_in, done.tokens_out)
        return PromptResult(
            messages=(done.message,),
            tokens_in=done.tokens_in,
            tokens_out=done.tokens_out,
        )

    def _raise_for_status(self, status_code: int, body: str) -> None:
        if 200 <= status_code < 300:
            return
        raise ProviderHTTPError(
            self.error_label,
            status_code,
            body,
            provider=self.provider.id,
            model=self.model,
        )


def _response_payload(message: Message) -> dict[str, Any]:
    return {
        "text": message.text or "",
        "tool_calls": [call.to_dict() for call in message.tool_calls],
    }
