"""Credit-guarded dispatch of generation requests to upstream providers."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.base import BaseService
from src.core.errors import (
    InsufficientCreditError,
    InvalidRequestError,
    NoUpstreamKeyError,
    ProviderFailureError,
    UnauthorizedError,
    UnsupportedProviderError,
)
from src.database.models import ApiRequestLog, RequestType
from src.modules.gateway.adapters import (
    GenerateCommand,
    ImageCommand,
    ProviderAdapter,
    UpstreamError,
    get_adapter,
)
from src.modules.ledger.reservation import CreditReservation
from src.modules.ledger.service import CreditLedgerService
from src.modules.providers.registry import ProviderRegistryService
from src.modules.proxies.pool import ProxyPoolService, UpstreamResponse
from src.utils.masking import mask_secret
from src.utils.settings.gateway import GatewaySettings


@dataclass
class GenerationOutcome:
    provider: str
    text: str
    usage: dict[str, Any] | None
    remaining_credit: int


@dataclass
class ImageOutcome:
    provider: str
    image_data: str
    mime_type: str
    remaining_credit: int


@dataclass
class KeyTestOutcome:
    provider: str
    valid: bool
    message: str
    error_kind: str | None = None


@dataclass
class _Dispatched:
    result: Any
    remaining_credit: int


class AIGatewayService(BaseService):
    """Reserve, call upstream, then commit or refund.

    A request moves ``received -> reserved -> upstream called`` and ends
    either committed (credit kept) or refunded (credit returned once).
    Validation failures happen before the reservation and never touch the
    balance.
    """

    def __init__(
        self,
        db: AsyncSession,
        ledger: CreditLedgerService | None = None,
        providers: ProviderRegistryService | None = None,
        proxy_pool: ProxyPoolService | None = None,
        settings: GatewaySettings | None = None,
    ):
        super().__init__(db)
        self.ledger = ledger or CreditLedgerService(db)
        self.providers = providers or ProviderRegistryService(db)
        self.proxy_pool = proxy_pool or ProxyPoolService(db)
        self.settings = settings or GatewaySettings()

    async def generate(
        self, caller_key: str | None, command: GenerateCommand
    ) -> GenerationOutcome:
        adapter = self._resolve_adapter(command.provider, images=False)
        self._validate_prompt(command.prompt)

        dispatched = await self._dispatch(
            caller_key,
            adapter,
            cost=self.settings.GATEWAY_TEXT_COST,
            request_type=RequestType.TEXT,
            prompt=command.prompt,
            call=lambda send, api_key: adapter.generate(send, api_key, command),
        )
        result = dispatched.result
        return GenerationOutcome(
            provider=adapter.provider_name,
            text=result.text,
            usage=result.usage,
            remaining_credit=dispatched.remaining_credit,
        )

    async def generate_image(
        self, caller_key: str | None, command: ImageCommand
    ) -> ImageOutcome:
        adapter = self._resolve_adapter(command.provider, images=True)
        self._validate_prompt(command.prompt)

        dispatched = await self._dispatch(
            caller_key,
            adapter,
            cost=self.settings.GATEWAY_IMAGE_COST,
            request_type=RequestType.IMAGE,
            prompt=command.prompt,
            call=lambda send, api_key: adapter.generate_image(send, api_key, command),
        )
        result = dispatched.result
        return ImageOutcome(
            provider=adapter.provider_name,
            image_data=result.image_data,
            mime_type=result.mime_type,
            remaining_credit=dispatched.remaining_credit,
        )

    async def test_provider_key(self, provider: str) -> KeyTestOutcome:
        """Live check of the key the registry would hand out next.

        No caller credit is involved. A rejection is reported in the outcome
        and recorded against the key like any other upstream failure.
        """
        adapter = get_adapter(provider)
        if adapter is None:
            raise UnsupportedProviderError(
                f"Provider {provider} is not supported",
                details={"provider": provider},
            )
        provider_name = adapter.provider_name
        api_key = await self.providers.get_best_api_key(provider_name)

        try:
            await adapter.verify_key(self._sender(api_key), api_key)
        except NotImplementedError as e:
            return KeyTestOutcome(adapter.name, valid=False, message=str(e))
        except UpstreamError as e:
            await self.providers.mark_key_error(
                provider_name, api_key, e.error_kind, e.message, e.status_code
            )
            return KeyTestOutcome(
                adapter.name,
                valid=False,
                message=f"{provider_name} API key test failed: {e.message}",
                error_kind=e.error_kind,
            )
        except asyncio.TimeoutError:
            return KeyTestOutcome(
                adapter.name,
                valid=False,
                message="Upstream request timed out",
                error_kind="timeout",
            )
        except Exception as e:
            return KeyTestOutcome(
                adapter.name,
                valid=False,
                message=str(e) or type(e).__name__,
                error_kind="network_error",
            )

        self.logger.info(
            "Upstream key test passed", provider=provider_name, key=mask_secret(api_key)
        )
        return KeyTestOutcome(
            adapter.name, valid=True, message=f"{provider_name} API key is valid"
        )

    def _resolve_adapter(self, provider: str, images: bool) -> ProviderAdapter:
        adapter = get_adapter(provider)
        supported = adapter is not None and (
            adapter.supports_images if images else adapter.supports_text
        )
        if not supported:
            raise UnsupportedProviderError(
                f"Provider {provider} is not supported",
                details={"provider": provider},
            )
        return adapter

    def _validate_prompt(self, prompt: str) -> None:
        if not prompt or not prompt.strip():
            raise InvalidRequestError("Prompt must not be empty")
        if len(prompt) > self.settings.GATEWAY_MAX_PROMPT_LENGTH:
            raise InvalidRequestError(
                "Prompt is too long",
                details={"max_length": self.settings.GATEWAY_MAX_PROMPT_LENGTH},
            )

    def _sender(self, api_key: str) -> Callable[..., Awaitable[UpstreamResponse]]:
        async def send(method, url, *, headers=None, json=None):
            return await self.proxy_pool.request_through(
                method,
                url,
                api_key,
                headers=headers,
                json=json,
                timeout=self.settings.GATEWAY_UPSTREAM_TIMEOUT,
            )

        return send

    async def _dispatch(
        self,
        caller_key: str | None,
        adapter: ProviderAdapter,
        cost: int,
        request_type: RequestType,
        prompt: str,
        call: Callable[[Callable[..., Awaitable[UpstreamResponse]], str], Awaitable[Any]],
    ) -> _Dispatched:
        if not caller_key:
            raise UnauthorizedError("API key is required")

        entry = await self.ledger.reserve_credit(caller_key, cost)
        if entry is None:
            raise InsufficientCreditError(
                "Insufficient credit or invalid key", details={"required": cost}
            )
        reservation = CreditReservation(self.ledger, caller_key, cost, entry.credit)
        provider = adapter.provider_name
        started = time.perf_counter()

        try:
            api_key = await self.providers.get_best_api_key(provider)
        except NoUpstreamKeyError:
            await reservation.refund("no_upstream_key")
            raise
        except Exception:
            await reservation.refund("key_selection_failed")
            raise

        try:
            result = await call(self._sender(api_key), api_key)
        except asyncio.CancelledError:
            await asyncio.shield(reservation.refund("cancelled"))
            raise
        except Exception as e:
            if isinstance(e, UpstreamError):
                kind, message, status_code = e.error_kind, e.message, e.status_code
            elif isinstance(e, asyncio.TimeoutError):
                kind, message, status_code = "timeout", "Upstream request timed out", None
            else:
                kind, message, status_code = "network_error", str(e) or type(e).__name__, None

            self.logger.warning(
                "Upstream call failed",
                provider=provider,
                key=mask_secret(api_key),
                error_kind=kind,
                status_code=status_code,
            )
            await self.providers.mark_key_error(provider, api_key, kind, message, status_code)
            await reservation.refund(kind)
            await self._log_request(
                provider,
                caller_key,
                request_type,
                prompt,
                started,
                success=False,
                error=message,
            )
            raise ProviderFailureError(
                f"{provider} request failed",
                details={"provider": provider, "error_kind": kind},
            ) from e

        await self.providers.mark_key_used(provider, api_key)
        remaining = reservation.commit()
        await self._log_request(
            provider,
            caller_key,
            request_type,
            prompt,
            started,
            success=True,
            response_length=len(getattr(result, "text", "") or ""),
            token_usage=getattr(result, "total_tokens", 0),
        )
        self.logger.info(
            "Generation completed",
            provider=provider,
            key=mask_secret(caller_key),
            request_type=request_type.value,
            remaining_credit=remaining,
        )
        return _Dispatched(result=result, remaining_credit=remaining)

    async def _log_request(
        self,
        provider: str,
        caller_key: str,
        request_type: RequestType,
        prompt: str,
        started: float,
        success: bool,
        error: str | None = None,
        response_length: int = 0,
        token_usage: int = 0,
    ) -> None:
        try:
            self.db.add(
                ApiRequestLog(
                    provider=provider,
                    user_key=caller_key,
                    request_type=request_type,
                    prompt_length=len(prompt),
                    response_length=response_length,
                    token_usage=token_usage,
                    success=success,
                    error=error[:2000] if error else None,
                    duration_ms=int((time.perf_counter() - started) * 1000),
                )
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            self.logger.warning("Failed to write request log", error=str(e))
