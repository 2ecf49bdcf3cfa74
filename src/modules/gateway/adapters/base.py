"""Common adapter contract for upstream AI providers."""

from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.modules.proxies.pool import UpstreamResponse


class SendFn(Protocol):
    async def __call__(
        self, method: str, url: str, *, headers: dict | None = None, json: Any = None
    ) -> UpstreamResponse: ...


@dataclass
class GenerateCommand:
    provider: str
    prompt: str
    system_instruction: str | None = None
    model: str | None = None
    use_search: bool = False
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class ImageCommand:
    provider: str
    prompt: str
    aspect_ratio: str = "1:1"


@dataclass
class GenerationResult:
    text: str
    usage: dict[str, Any] | None = None

    @property
    def total_tokens(self) -> int:
        if not self.usage:
            return 0
        return int(self.usage.get("total_tokens") or 0)


@dataclass
class ImageResult:
    image_data: str
    mime_type: str = "image/png"


class UpstreamError(Exception):
    """Provider call failed; ``error_kind`` feeds key health bookkeeping."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_kind: str = "upstream_error",
    ):
        self.message = message
        self.status_code = status_code
        self.error_kind = error_kind
        super().__init__(message)


def error_kind_for_status(status: int) -> str:
    if status == 429:
        return "quota_exceeded"
    if status in (401, 403):
        return "invalid_key"
    if 400 <= status < 500:
        # Caller-shaped payloads end up here; never a credential problem
        return "bad_request"
    return "http_error"


class ProviderAdapter(ABC):
    """Shapes requests and responses for one provider.

    ``provider_name`` is the registry name whose key pool the adapter draws
    from; ``name`` and aliases are what callers send.
    """

    name: str
    provider_name: str
    aliases: tuple[str, ...] = ()
    supports_text: bool = True
    supports_images: bool = False

    async def generate(
        self, send: SendFn, api_key: str, command: GenerateCommand
    ) -> GenerationResult:
        raise NotImplementedError(f"{self.name} does not generate text")

    async def generate_image(
        self, send: SendFn, api_key: str, command: ImageCommand
    ) -> ImageResult:
        raise NotImplementedError(f"{self.name} does not generate images")

    async def verify_key(self, send: SendFn, api_key: str) -> None:
        """Cheapest authenticated call the provider offers; raises on rejection."""
        raise NotImplementedError(f"{self.name} has no key check")

    def error_kind(self, response: UpstreamResponse) -> str:
        return error_kind_for_status(response.status)

    def check_response(self, response: UpstreamResponse) -> Any:
        """Raise ``UpstreamError`` for non-2xx or non-JSON bodies."""
        if not response.ok:
            raise UpstreamError(
                f"{self.provider_name} API error {response.status}: {response.text[:500]}",
                status_code=response.status,
                error_kind=self.error_kind(response),
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{self.provider_name} returned a malformed response",
                status_code=response.status,
                error_kind="malformed_response",
            ) from e
