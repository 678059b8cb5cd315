"""LLM provider clients.

Every client offers plain completion and text streaming. Clients whose
provider can ground answers in live web search additionally implement
``SearchLLMClient.search_stream``, which yields text together with the
citations the provider attaches to it.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, List, Optional

from tiered_rag.config import GenerationConfig, get_settings
from tiered_rag.core.exceptions import ProviderNotConfiguredError

logger = logging.getLogger(__name__)


@dataclass
class Citation:
    """A web source attached to generated text."""
    title: str
    url: str


@dataclass
class SearchStreamChunk:
    """A piece of search-grounded output."""
    text: str = ""
    citations: List[Citation] = field(default_factory=list)


# Used when no model is configured for a provider.
DEFAULT_MODELS = {
    "gemini": "gemini-2.0-flash",
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-latest",
}


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    model: str

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Generate a response."""
        pass

    @abstractmethod
    def generate_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]:
        """Generate a streaming response."""
        pass


class SearchLLMClient(LLMClient):
    """An LLM client that can answer with live web search."""

    @abstractmethod
    def search_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[SearchStreamChunk]:
        """Stream a web-search grounded response."""
        pass


class GeminiClient(SearchLLMClient):
    """Google Gemini client (google-genai SDK)."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODELS["gemini"]):
        """Initialize Gemini client."""
        try:
            from google import genai
            from google.genai import types
        except ImportError:
            raise ImportError("google-genai package required. Install with: pip install google-genai")
        self.client = genai.Client(api_key=api_key)
        self.types = types
        self.model = model

    def _config(self, system, max_tokens, temperature, tools=None):
        return self.types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=max_tokens,
            temperature=temperature,
            tools=tools,
        )

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Generate using Gemini."""
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=self._config(system, max_tokens, temperature),
        )
        return response.text or ""

    async def generate_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]:
        """Stream generate using Gemini."""
        stream = await self.client.aio.models.generate_content_stream(
            model=self.model,
            contents=prompt,
            config=self._config(system, max_tokens, temperature),
        )
        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                if chunk.text:
                    yield chunk.text

    async def search_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[SearchStreamChunk]:
        """Stream generate with the Google Search tool enabled."""
        tools = [self.types.Tool(google_search=self.types.GoogleSearch())]
        stream = await self.client.aio.models.generate_content_stream(
            model=self.model,
            contents=prompt,
            config=self._config(system, max_tokens, temperature, tools=tools),
        )
        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                yield SearchStreamChunk(
                    text=chunk.text or "",
                    citations=self._grounding_citations(chunk),
                )

    @staticmethod
    def _grounding_citations(chunk: Any) -> List[Citation]:
        candidates = getattr(chunk, "candidates", None) or []
        if not candidates:
            return []
        metadata = getattr(candidates[0], "grounding_metadata", None)
        grounding_chunks = getattr(metadata, "grounding_chunks", None) or []

        citations = []
        for grounding_chunk in grounding_chunks:
            web = getattr(grounding_chunk, "web", None)
            if web is not None and web.uri and web.title:
                citations.append(Citation(title=web.title, url=web.uri))
        return citations


class OpenAIClient(SearchLLMClient):
    """OpenAI API client."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODELS["openai"]):
        """Initialize OpenAI client."""
        try:
            from openai import AsyncOpenAI
            self.client = AsyncOpenAI(api_key=api_key)
            self.model = model
        except ImportError:
            raise ImportError("openai package required. Install with: pip install openai")

    @staticmethod
    def _messages(prompt: str, system: Optional[str]):
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Generate using OpenAI."""
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(prompt, system),
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return response.choices[0].message.content or ""

    async def generate_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]:
        """Stream generate using OpenAI."""
        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(prompt, system),
            max_tokens=max_tokens,
            temperature=temperature,
            stream=True,
        )
        async with stream:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content

    async def search_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[SearchStreamChunk]:
        """Stream generate using the Responses API web search tool."""
        stream = await self.client.responses.create(
            model=self.model,
            instructions=system,
            input=prompt,
            tools=[{"type": "web_search"}],
            max_output_tokens=max_tokens,
            temperature=temperature,
            stream=True,
        )
        async with stream:
            async for event in stream:
                if event.type == "response.output_text.delta":
                    yield SearchStreamChunk(text=event.delta)
                elif event.type == "response.output_text.annotation.added":
                    annotation = event.annotation
                    if isinstance(annotation, dict):
                        kind, url, title = (
                            annotation.get("type"), annotation.get("url"), annotation.get("title")
                        )
                    else:
                        kind, url, title = (
                            getattr(annotation, "type", None),
                            getattr(annotation, "url", None),
                            getattr(annotation, "title", None),
                        )
                    if kind == "url_citation" and url:
                        yield SearchStreamChunk(citations=[Citation(title=title or url, url=url)])


class AnthropicClient(LLMClient):
    """Anthropic API client."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODELS["anthropic"]):
        """Initialize Anthropic client."""
        try:
            from anthropic import AsyncAnthropic
            self.client = AsyncAnthropic(api_key=api_key)
            self.model = model
        except ImportError:
            raise ImportError("anthropic package required. Install with: pip install anthropic")

    def _kwargs(self, prompt, system, max_tokens, temperature):
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        return kwargs

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Generate using Anthropic."""
        response = await self.client.messages.create(
            **self._kwargs(prompt, system, max_tokens, temperature)
        )
        return response.content[0].text

    async def generate_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]:
        """Stream generate using Anthropic."""
        async with self.client.messages.stream(
            **self._kwargs(prompt, system, max_tokens, temperature)
        ) as stream:
            async with aclosing(stream.text_stream) as text_stream:
                async for text in text_stream:
                    yield text


def build_llm_client(
    provider: str,
    config: Optional[GenerationConfig] = None,
    model: Optional[str] = None,
) -> LLMClient:
    """Construct a client for the named provider.

    Raises:
        ProviderNotConfiguredError: for unknown providers or missing keys
    """
    config = config or get_settings().generation
    if not model and provider == config.provider:
        model = config.model
    model = model or DEFAULT_MODELS.get(provider)

    if provider == "gemini":
        if not config.gemini_api_key:
            raise ProviderNotConfiguredError("Gemini API key not configured")
        client = GeminiClient(api_key=config.gemini_api_key, model=model)
    elif provider == "openai":
        if not config.openai_api_key:
            raise ProviderNotConfiguredError("OpenAI API key not configured")
        client = OpenAIClient(api_key=config.openai_api_key, model=model)
    elif provider == "anthropic":
        if not config.anthropic_api_key:
            raise ProviderNotConfiguredError("Anthropic API key not configured")
        client = AnthropicClient(api_key=config.anthropic_api_key, model=model)
    else:
        raise ProviderNotConfiguredError(f"Unknown LLM provider: {provider}")

    logger.info(f"Initialized {provider} client with model {model}")
    return client
