"""OpenAI chat completions, also spoken by DeepSeek."""

from src.modules.gateway.adapters.base import (
    GenerateCommand,
    GenerationResult,
    ProviderAdapter,
    SendFn,
    UpstreamError,
)
from src.utils.settings.gateway import GatewaySettings


class OpenAICompatibleAdapter(ProviderAdapter):
    def __init__(
        self,
        name: str,
        provider_name: str,
        base_url: str,
        default_model: str,
    ):
        self.name = name
        self.provider_name = provider_name
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model

    async def generate(
        self, send: SendFn, api_key: str, command: GenerateCommand
    ) -> GenerationResult:
        messages = []
        if command.system_instruction:
            messages.append({"role": "system", "content": command.system_instruction})
        messages.append({"role": "user", "content": command.prompt})

        response = await send(
            "POST",
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                **command.options,
                "model": command.model or self.default_model,
                "messages": messages,
            },
        )
        data = self.check_response(response)

        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError(
                f"{self.provider_name} response has no choices",
                error_kind="malformed_response",
            ) from e
        return GenerationResult(text=text, usage=data.get("usage"))

    async def verify_key(self, send: SendFn, api_key: str) -> None:
        response = await send(
            "GET",
            f"{self.base_url}/models",
            headers={"Authorization": f"Bearer {api_key}"},
        )
        self.check_response(response)


def openai_adapter(settings: GatewaySettings | None = None) -> OpenAICompatibleAdapter:
    settings = settings or GatewaySettings()
    return OpenAICompatibleAdapter(
        "openai", "OpenAI", settings.OPENAI_BASE_URL, settings.OPENAI_DEFAULT_MODEL
    )


def deepseek_adapter(
    settings: GatewaySettings | None = None,
) -> OpenAICompatibleAdapter:
    settings = settings or GatewaySettings()
    return OpenAICompatibleAdapter(
        "deepseek",
        "DeepSeek",
        settings.DEEPSEEK_BASE_URL,
        settings.DEEPSEEK_DEFAULT_MODEL,
    )
