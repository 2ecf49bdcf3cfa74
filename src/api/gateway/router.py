from dataclasses import asdict

from fastapi import APIRouter

from src.api.core.dependencies import (
    CallerDep,
    GatewayServiceDep,
    ProviderRegistryDep,
)
from src.api.core.messages import APIResponse, MessageCode
from src.api.gateway.schemas import (
    GenerateImageRequest,
    GenerateImageResponse,
    GenerateRequest,
    GenerateResponse,
    ImageModel,
    GenerationModel,
    ProviderInfo,
    ProvidersModel,
    ProvidersResponse,
)
from src.modules.gateway.adapters import (
    GenerateCommand,
    ImageCommand,
    registered_adapters,
)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(registry: ProviderRegistryDep) -> ProvidersResponse:
    """Registered providers that currently have at least one usable key."""
    available = {name.lower() for name in await registry.list_available_providers()}
    providers = [
        ProviderInfo(
            name=adapter.name,
            provider=adapter.provider_name,
            supports_text=adapter.supports_text,
            supports_images=adapter.supports_images,
        )
        for adapter in registered_adapters()
        if adapter.provider_name.lower() in available
    ]
    return APIResponse.success(
        data=ProvidersModel(providers=providers, count=len(providers))
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    caller: CallerDep,
    gateway: GatewayServiceDep,
) -> GenerateResponse:
    """Generate text with the requested provider. Costs one credit."""
    outcome = await gateway.generate(caller.key, GenerateCommand(**body.model_dump()))
    return APIResponse.success(
        message_code=MessageCode.GENERATION_COMPLETED,
        data=GenerationModel(**asdict(outcome)),
    )


@router.post("/generate-image", response_model=GenerateImageResponse)
async def generate_image(
    body: GenerateImageRequest,
    caller: CallerDep,
    gateway: GatewayServiceDep,
) -> GenerateImageResponse:
    """Generate an image (base64). Costs two credits."""
    outcome = await gateway.generate_image(
        caller.key, ImageCommand(**body.model_dump())
    )
    return APIResponse.success(
        message_code=MessageCode.GENERATION_COMPLETED,
        data=ImageModel(**asdict(outcome)),
    )
