"""Backend clients — HTTP connections to the text and image generators.

The story teller is injected with two callables:

    async def llm(stage: str, prompt: str) -> str: ...
    async def images(prompt: str) -> str: ...

`stage` names the caller ("narrator", "summary", "oracle") and is only used
for logging. An image callable returns something a browser can display: an
https URL or a `data:image/png;base64,...` URL.

Implementations:

    HttpLLM             — KoboldCpp or OpenAI-compatible text completions.
    EchoLLM             — returns the prompt unchanged, no network.
    HttpImageGenerator  — OpenAI-compatible /v1/images/generations.

Tests use the stub callables defined in conftest.py instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


class ImageGenerator(Protocol):
    async def __call__(self, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when a generation backend cannot be reached or returns an error."""


class ResponseFormatError(LLMError):
    """Raised when backend output does not match the expected schema."""


# ---------------------------------------------------------------------------
# HttpLLM
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


def _auth_headers(api_key: str) -> dict[str, str]:
    headers: dict[str, str] = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


async def _post_json(url: str, body: dict, headers: dict, timeout: float, base_url: str) -> dict:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, json=body, headers=headers)
            resp.raise_for_status()
    except httpx.ConnectError as e:
        raise LLMError(f"Cannot connect to backend at {base_url}") from e
    except httpx.HTTPStatusError as e:
        raise LLMError(f"Backend returned HTTP {e.response.status_code}") from e
    except httpx.TimeoutException as e:
        raise LLMError(f"Backend timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise LLMError(f"Request to backend at {base_url} failed: {e!r}") from e
    try:
        data = resp.json()
    except ValueError as e:
        raise ResponseFormatError("Backend returned a non-JSON body") from e
    if not isinstance(data, dict):
        raise ResponseFormatError(f"Backend returned JSON {type(data).__name__}, expected an object")
    return data


def _first_item(data: dict, key: str) -> dict | None:
    """First element of data[key] if it is a list of objects, else None."""
    items = data.get(key)
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        return None
    return items[0]


class HttpLLM:
    """Async HTTP client for text-completion backends.

    Supported formats:
      "koboldcpp"  — POST /api/v1/generate  {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}
      "openai"     — POST /v1/completions   {"model": ..., "prompt": ...}
                     Response: {"choices": [{"text": "..."}]}
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _build_request(self, prompt: str) -> tuple[str, dict]:
        if self._format == "openai":
            body: dict = {"prompt": prompt}
            if self._model:
                body["model"] = self._model
            return f"{self._base_url}/v1/completions", body
        return f"{self._base_url}/api/v1/generate", {"prompt": prompt}

    def _parse_response(self, data: dict) -> str:
        key = "choices" if self._format == "openai" else "results"
        first = _first_item(data, key)
        if first is None or not isinstance(first.get("text"), str):
            raise ResponseFormatError(f"Unexpected response format from {self._format} backend")
        return first["text"]

    async def __call__(self, stage: str, prompt: str) -> str:
        url, body = self._build_request(prompt)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))
        data = await _post_json(url, body, _auth_headers(self._api_key), self._timeout, self._base_url)
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


class EchoLLM:
    """Returns the prompt text as-is. The narrator stage will fail schema
    validation with it, which is enough to exercise the failure path end-to-end."""

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt


# ---------------------------------------------------------------------------
# HttpImageGenerator
# ---------------------------------------------------------------------------

class HttpImageGenerator:
    """POST /v1/images/generations on an OpenAI-compatible image backend.

    Accepts either `b64_json` (returned as a data URL) or `url` in the first
    element of `data`.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        model: str = "",
        size: str = "1792x1024",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._size = size
        self._timeout = timeout

    async def __call__(self, prompt: str) -> str:
        url = f"{self._base_url}/v1/images/generations"
        body: dict = {"prompt": prompt, "n": 1, "size": self._size, "response_format": "b64_json"}
        if self._model:
            body["model"] = self._model
        logger.debug("image call url=%s prompt_len=%d", url, len(prompt))
        data = await _post_json(url, body, _auth_headers(self._api_key), self._timeout, self._base_url)

        first = _first_item(data, "data")
        if first is None:
            raise ResponseFormatError("No image generated")
        b64 = first.get("b64_json")
        if b64 and isinstance(b64, str):
            return f"data:image/png;base64,{b64}"
        image_url = first.get("url")
        if image_url and isinstance(image_url, str):
            return image_url
        raise ResponseFormatError("No image generated")
