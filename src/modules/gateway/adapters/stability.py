from src.modules.gateway.adapters.base import (
    ImageCommand,
    ImageResult,
    ProviderAdapter,
    SendFn,
    UpstreamError,
)
from src.utils.settings.gateway import GatewaySettings

# (width, height) accepted by SDXL
DIMENSIONS = {
    "1:1": (1024, 1024),
    "16:9": (1344, 768),
    "9:16": (768, 1344),
    "4:3": (1152, 896),
    "3:4": (896, 1152),
}


class StabilityAdapter(ProviderAdapter):
    name = "stability"
    provider_name = "Stability AI"
    supports_text = False
    supports_images = True

    def __init__(self, settings: GatewaySettings | None = None):
        self.settings = settings or GatewaySettings()

    async def verify_key(self, send: SendFn, api_key: str) -> None:
        response = await send(
            "GET",
            f"{self.settings.STABILITY_BASE_URL}/user/account",
            headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
        )
        self.check_response(response)

    async def generate_image(
        self, send: SendFn, api_key: str, command: ImageCommand
    ) -> ImageResult:
        width, height = DIMENSIONS.get(command.aspect_ratio, DIMENSIONS["1:1"])
        response = await send(
            "POST",
            f"{self.settings.STABILITY_BASE_URL}/generation/"
            f"{self.settings.STABILITY_ENGINE}/text-to-image",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            json={
                "text_prompts": [{"text": command.prompt}],
                "cfg_scale": 7,
                "width": width,
                "height": height,
                "samples": 1,
                "steps": 30,
            },
        )
        data = self.check_response(response)
        artifacts = data.get("artifacts") or []
        if not artifacts or not artifacts[0].get("base64"):
            raise UpstreamError(
                "No image data received from Stability API",
                error_kind="malformed_response",
            )
        return ImageResult(image_data=artifacts[0]["base64"])
