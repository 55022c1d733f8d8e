import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from chatstream.adapters import (
    AnthropicAdapter,
    EventAdapter,
    GeminiAdapter,
    OpenAIAdapter,
)
from chatstream.message import Message, MessageRole


@dataclass
class StreamRequest:
    """Everything the stream driver needs to issue one request."""

    url: str
    body: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    method: str = "POST"


class ModelProvider(ABC):
    """Builds streaming requests for one backend and the adapter to read them.

    Subclasses implement :meth:`build_request` and :meth:`create_adapter`.
    """

    name = "custom"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def build_request(
            self,
            messages: list[Message],
            user_input: str,
            model_name: str = "",
    ) -> StreamRequest:
        """Build the request for one turn; *model_name* overrides the default."""

    @abstractmethod
    def create_adapter(self) -> EventAdapter:
        """Return a fresh adapter for one streaming call."""

    def _model(self, model_name: str) -> str:
        return model_name or self.model


class OpenAIProvider(ModelProvider):

    name = "openai"

    def __init__(
            self,
            api_key: str | None = None,
            base_url: str = "https://api.openai.com/v1/chat/completions",
            model: str = "gpt-4",
    ):
        super().__init__(model)
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        self.api_key = api_key
        self.base_url = base_url

    def build_request(
            self,
            messages: list[Message],
            user_input: str,
            model_name: str = "",
    ) -> StreamRequest:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return StreamRequest(
            url=self.base_url,
            headers=headers,
            body={
                "model": self._model(model_name),
                "messages": [
                    *[m.to_api() for m in messages],
                    {"role": "user", "content": user_input},
                ],
                "stream": True,
            },
        )

    def create_adapter(self) -> EventAdapter:
        return OpenAIAdapter()


class AnthropicProvider(ModelProvider):

    name = "anthropic"
    api_version = "2023-06-01"

    def __init__(
            self,
            api_key: str | None = None,
            base_url: str = "https://api.anthropic.com/v1/messages",
            model: str = "claude-3-5-sonnet-20241022",
            max_tokens: int = 1024,
    ):
        super().__init__(model)
        if not api_key:
            api_key = os.getenv("ANTHROPIC_API_KEY")
        self.api_key = api_key
        self.base_url = base_url
        self.max_tokens = max_tokens

    def build_request(
            self,
            messages: list[Message],
            user_input: str,
            model_name: str = "",
    ) -> StreamRequest:
        headers = {}
        if self.api_key:
            headers = {
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
            }
        # The Messages API takes the system prompt outside the message list
        system = "\n\n".join(
            m.content for m in messages if m.role == MessageRole.SYSTEM
        )
        body = {
            "model": self._model(model_name),
            "max_tokens": self.max_tokens,
            "messages": [
                *[m.to_api() for m in messages if m.role != MessageRole.SYSTEM],
                {"role": "user", "content": user_input},
            ],
            "stream": True,
        }
        if system:
            body["system"] = system
        return StreamRequest(url=self.base_url, headers=headers, body=body)

    def create_adapter(self) -> EventAdapter:
        return AnthropicAdapter()


class GeminiProvider(ModelProvider):

    name = "gemini"

    def __init__(
            self,
            api_key: str | None = None,
            base_url: str | None = None,
            model: str = "gemini-pro",
    ):
        super().__init__(model)
        if not api_key:
            api_key = os.getenv("GEMINI_API_KEY")
        self.api_key = api_key
        self.base_url = base_url

    def url_for(self, model: str) -> str:
        if self.base_url:
            return self.base_url
        return (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{model}:streamGenerateContent?alt=sse"
        )

    def build_request(
            self,
            messages: list[Message],
            user_input: str,
            model_name: str = "",
    ) -> StreamRequest:
        headers = {"x-goog-api-key": self.api_key} if self.api_key else {}
        contents = [
            {
                "role": "user" if m.role == MessageRole.USER else "model",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m.role != MessageRole.SYSTEM
        ]
        contents.append({"role": "user", "parts": [{"text": user_input}]})
        body: dict[str, Any] = {"contents": contents}
        system = "\n\n".join(
            m.content for m in messages if m.role == MessageRole.SYSTEM
        )
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return StreamRequest(
            url=self.url_for(self._model(model_name)),
            headers=headers,
            body=body,
        )

    def create_adapter(self) -> EventAdapter:
        return GeminiAdapter()
