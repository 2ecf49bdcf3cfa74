"""AI gateway API schemas."""

from typing import Any

from pydantic import BaseModel, Field

from src.api.core.messages import APIResponse


class GenerateRequest(BaseModel):
    provider: str = Field(..., min_length=1, max_length=64)
    prompt: str = Field(..., min_length=1)
    system_instruction: str | None = None
    model: str | None = Field(None, max_length=128)
    use_search: bool = False
    options: dict[str, Any] = Field(default_factory=dict)


class GenerateImageRequest(BaseModel):
    provider: str = Field(..., min_length=1, max_length=64)
    prompt: str = Field(..., min_length=1)
    aspect_ratio: str = Field("1:1", pattern=r"^\d{1,2}:\d{1,2}$")


class GenerationModel(BaseModel):
    provider: str
    text: str
    usage: dict[str, Any] | None = None
    remaining_credit: int


class ImageModel(BaseModel):
    provider: str
    image_data: str
    mime_type: str
    remaining_credit: int


class ProviderInfo(BaseModel):
    name: str
    provider: str
    supports_text: bool
    supports_images: bool


class ProvidersModel(BaseModel):
    providers: list[ProviderInfo]
    count: int


GenerateResponse = APIResponse[GenerationModel]
GenerateImageResponse = APIResponse[ImageModel]
ProvidersResponse = APIResponse[ProvidersModel]
