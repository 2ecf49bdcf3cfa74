from src.modules.gateway.adapters.base import (
    GenerateCommand,
    GenerationResult,
    ImageCommand,
    ImageResult,
    ProviderAdapter,
    SendFn,
    UpstreamError,
)
from src.modules.proxies.pool import UpstreamResponse
from src.utils.settings.gateway import GatewaySettings

IMAGE_MODEL = "imagen-3.0-generate-002"
API_KEY_INVALID_REASON = "API_KEY_INVALID"


def _error_reasons(response: UpstreamResponse) -> set[str]:
    try:
        details = response.json()["error"]["details"]
        return {d["reason"] for d in details if isinstance(d, dict) and "reason" in d}
    except (ValueError, KeyError, TypeError):
        return set()


class GeminiAdapter(ProviderAdapter):
    name = "gemini"
    provider_name = "Gemini"
    aliases = ("google",)
    supports_images = True

    def __init__(self, settings: GatewaySettings | None = None):
        self.settings = settings or GatewaySettings()

    def _headers(self, api_key: str) -> dict:
        return {"x-goog-api-key": api_key, "Content-Type": "application/json"}

    def error_kind(self, response: UpstreamResponse) -> str:
        # A rejected key comes back as a 400; only the structured reason says so
        if response.status == 400 and API_KEY_INVALID_REASON in _error_reasons(
            response
        ):
            return "invalid_key"
        return super().error_kind(response)

    async def verify_key(self, send: SendFn, api_key: str) -> None:
        response = await send(
            "GET",
            f"{self.settings.GEMINI_BASE_URL}/models",
            headers=self._headers(api_key),
        )
        self.check_response(response)

    async def generate(
        self, send: SendFn, api_key: str, command: GenerateCommand
    ) -> GenerationResult:
        model = command.model or self.settings.GEMINI_DEFAULT_MODEL
        payload: dict = {
            "contents": [{"role": "user", "parts": [{"text": command.prompt}]}],
        }
        if command.system_instruction:
            payload["systemInstruction"] = {
                "parts": [{"text": command.system_instruction}]
            }
        if command.use_search:
            payload["tools"] = [{"google_search": {}}]
        if command.options:
            payload["generationConfig"] = command.options

        response = await send(
            "POST",
            f"{self.settings.GEMINI_BASE_URL}/models/{model}:generateContent",
            headers=self._headers(api_key),
            json=payload,
        )
        data = self.check_response(response)

        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError(
                "Gemini response has no candidates", error_kind="malformed_response"
            ) from e

        usage = data.get("usageMetadata") or {}
        return GenerationResult(
            text=text,
            usage={
                "prompt_tokens": usage.get("promptTokenCount", 0),
                "completion_tokens": usage.get("candidatesTokenCount", 0),
                "total_tokens": usage.get("totalTokenCount", 0),
            },
        )

    async def generate_image(
        self, send: SendFn, api_key: str, command: ImageCommand
    ) -> ImageResult:
        response = await send(
            "POST",
            f"{self.settings.GEMINI_BASE_URL}/models/{IMAGE_MODEL}:predict",
            headers=self._headers(api_key),
            json={
                "instances": [{"prompt": command.prompt}],
                "parameters": {
                    "sampleCount": 1,
                    "aspectRatio": command.aspect_ratio,
                    "outputOptions": {"mimeType": "image/png"},
                },
            },
        )
        data = self.check_response(response)
        predictions = data.get("predictions") or []
        if not predictions or not predictions[0].get("bytesBase64Encoded"):
            raise UpstreamError(
                "No image data received from Gemini API",
                error_kind="malformed_response",
            )
        return ImageResult(
            image_data=predictions[0]["bytesBase64Encoded"],
            mime_type=predictions[0].get("mimeType", "image/png"),
        )
