"""Credit-guarded gateway dispatch tests."""

import asyncio
import json

import pytest
from sqlalchemy import select

from src.core.errors import (
    InsufficientCreditError,
    InvalidRequestError,
    NoUpstreamKeyError,
    ProviderFailureError,
    UnauthorizedError,
    UnsupportedProviderError,
)
from src.database.models import ApiRequestLog, ProviderKeyStatus
from src.modules.gateway.adapters import GenerateCommand, ImageCommand
from src.modules.gateway.service import AIGatewayService
from src.modules.ledger.service import CreditLedgerService
from src.modules.proxies.pool import UpstreamResponse
from tests.factories import KeyFactory, ProviderFactory


async def _balance(session, key: str) -> int:
    return await CreditLedgerService(session).get_balance(key)


async def _logs(session) -> list[ApiRequestLog]:
    result = await session.execute(select(ApiRequestLog))
    return list(result.scalars().all())


class TestGenerate:
    @pytest.mark.asyncio
    async def test_success_charges_one_credit(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=3)

        outcome = await AIGatewayService(db_session).generate(
            key.key, GenerateCommand(provider="gemini", prompt="Chao ban")
        )

        assert outcome.text == "Xin chao"
        assert outcome.provider == "Gemini"
        assert outcome.usage["total_tokens"] == 12
        assert outcome.remaining_credit == 2
        assert await _balance(db_session, key.key) == 2

        call = upstream.calls[0]
        assert call["headers"]["x-goog-api-key"] == "gemini-upstream-1"
        assert call["url"].endswith(":generateContent")

        logs = await _logs(db_session)
        assert len(logs) == 1
        assert logs[0].success is True
        assert logs[0].token_usage == 12

    @pytest.mark.asyncio
    async def test_concurrent_requests_with_one_credit(
        self, db_session, session_factory, gemini, upstream
    ):
        """Two racing calls on a one-credit key: only one reaches upstream."""
        key = await KeyFactory.create_async(db_session, credit=1)

        async def call():
            async with session_factory() as session:
                return await AIGatewayService(session).generate(
                    key.key, GenerateCommand(provider="gemini", prompt="hi")
                )

        results = await asyncio.gather(call(), call(), return_exceptions=True)

        assert len(upstream.calls) == 1
        assert sum(1 for r in results if isinstance(r, InsufficientCreditError)) == 1
        assert await _balance(db_session, key.key) == 0

    @pytest.mark.asyncio
    async def test_upstream_failure_refunds(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=2)
        upstream.queue(UpstreamResponse(status=500, body=b"internal error"))

        with pytest.raises(ProviderFailureError) as exc_info:
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="gemini", prompt="hi")
            )

        assert exc_info.value.details["error_kind"] == "http_error"
        assert await _balance(db_session, key.key) == 2
        logs = await _logs(db_session)
        assert logs[0].success is False
        assert "500" in logs[0].error

    @pytest.mark.asyncio
    async def test_quota_error_marks_upstream_key(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=2)
        upstream.queue(UpstreamResponse(status=429, body=b"RESOURCE_EXHAUSTED"))

        with pytest.raises(ProviderFailureError):
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="gemini", prompt="hi")
            )

        result = await db_session.execute(
            select(ProviderKeyStatus.quota_exceeded).where(
                ProviderKeyStatus.key == "gemini-upstream-1"
            )
        )
        assert result.scalar_one() is True
        assert await _balance(db_session, key.key) == 2

    @pytest.mark.asyncio
    async def test_caller_bad_request_keeps_upstream_key(self, db_session, upstream):
        await ProviderFactory.create_async(db_session, name="OpenAI", api_keys=["sk-1"])
        caller = (await KeyFactory.create_async(db_session, credit=2)).key
        upstream.queue(
            UpstreamResponse(
                status=400,
                body=json.dumps(
                    {
                        "error": {
                            "type": "invalid_request_error",
                            "message": "temperature must be <= 2",
                        }
                    }
                ).encode(),
            ),
            UpstreamResponse(
                status=200,
                body=json.dumps({"choices": [{"message": {"content": "ok"}}]}).encode(),
            ),
        )
        service = AIGatewayService(db_session)

        with pytest.raises(ProviderFailureError) as exc_info:
            await service.generate(
                caller,
                GenerateCommand(provider="openai", prompt="hi", options={"temperature": 9}),
            )
        outcome = await service.generate(
            caller, GenerateCommand(provider="openai", prompt="hi")
        )

        assert exc_info.value.details["error_kind"] == "bad_request"
        assert outcome.text == "ok"
        result = await db_session.execute(
            select(ProviderKeyStatus.is_active, ProviderKeyStatus.quota_exceeded)
            .where(ProviderKeyStatus.key == "sk-1")
            .execution_options(populate_existing=True)
        )
        assert tuple(result.one()) == (True, False)
        assert await _balance(db_session, caller) == 1

    @pytest.mark.asyncio
    async def test_rejected_gemini_key_is_deactivated(self, db_session, gemini, upstream):
        caller = (await KeyFactory.create_async(db_session, credit=1)).key
        upstream.queue(
            UpstreamResponse(
                status=400,
                body=json.dumps(
                    {
                        "error": {
                            "code": 400,
                            "message": "API key not valid. Please pass a valid API key.",
                            "status": "INVALID_ARGUMENT",
                            "details": [
                                {
                                    "@type": "type.googleapis.com/google.rpc.ErrorInfo",
                                    "reason": "API_KEY_INVALID",
                                }
                            ],
                        }
                    }
                ).encode(),
            )
        )

        with pytest.raises(ProviderFailureError) as exc_info:
            await AIGatewayService(db_session).generate(
                caller, GenerateCommand(provider="gemini", prompt="hi")
            )

        assert exc_info.value.details["error_kind"] == "invalid_key"
        result = await db_session.execute(
            select(ProviderKeyStatus.is_active)
            .where(ProviderKeyStatus.key == "gemini-upstream-1")
            .execution_options(populate_existing=True)
        )
        assert result.scalar_one() is False
        assert await _balance(db_session, caller) == 1

    @pytest.mark.asyncio
    async def test_network_error_refunds(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=1)
        upstream.queue(asyncio.TimeoutError())

        with pytest.raises(ProviderFailureError) as exc_info:
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="gemini", prompt="hi")
            )

        assert exc_info.value.details["error_kind"] == "timeout"
        assert await _balance(db_session, key.key) == 1

    @pytest.mark.asyncio
    async def test_malformed_response_refunds(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=1)
        upstream.queue(UpstreamResponse(status=200, body=b"not json"))

        with pytest.raises(ProviderFailureError):
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="gemini", prompt="hi")
            )
        assert await _balance(db_session, key.key) == 1

    @pytest.mark.asyncio
    async def test_unsupported_provider_leaves_balance(self, db_session, upstream):
        key = await KeyFactory.create_async(db_session, credit=5)

        with pytest.raises(UnsupportedProviderError):
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="claude-9000", prompt="hi")
            )

        assert await _balance(db_session, key.key) == 5
        assert upstream.calls == []

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected_before_reservation(self, db_session, gemini):
        key = await KeyFactory.create_async(db_session, credit=5)

        with pytest.raises(InvalidRequestError):
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="gemini", prompt="   ")
            )
        assert await _balance(db_session, key.key) == 5

    @pytest.mark.asyncio
    async def test_no_upstream_key_refunds(self, db_session, upstream):
        await ProviderFactory.create_async(db_session, name="OpenAI", api_keys=[])
        key = await KeyFactory.create_async(db_session, credit=1)

        with pytest.raises(NoUpstreamKeyError):
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="openai", prompt="hi")
            )

        assert await _balance(db_session, key.key) == 1
        assert upstream.calls == []

    @pytest.mark.asyncio
    async def test_missing_key_is_unauthorized(self, db_session, gemini):
        with pytest.raises(UnauthorizedError):
            await AIGatewayService(db_session).generate(
                None, GenerateCommand(provider="gemini", prompt="hi")
            )

    @pytest.mark.asyncio
    async def test_zero_balance_is_rejected(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=0)

        with pytest.raises(InsufficientCreditError):
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="gemini", prompt="hi")
            )
        assert upstream.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_request_refunds(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=1)
        upstream.queue(asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await AIGatewayService(db_session).generate(
                key.key, GenerateCommand(provider="gemini", prompt="hi")
            )
        assert await _balance(db_session, key.key) == 1

    @pytest.mark.asyncio
    async def test_openai_payload_and_usage(self, db_session, upstream):
        await ProviderFactory.create_async(db_session, name="OpenAI", api_keys=["sk-1"])
        key = await KeyFactory.create_async(db_session, credit=1)
        upstream.queue(
            UpstreamResponse(
                status=200,
                body=json.dumps(
                    {
                        "choices": [{"message": {"content": "Hello"}}],
                        "usage": {"total_tokens": 7},
                    }
                ).encode(),
            )
        )

        outcome = await AIGatewayService(db_session).generate(
            key.key,
            GenerateCommand(
                provider="OpenAI",
                prompt="hi",
                system_instruction="be brief",
                options={"temperature": 0.2},
            ),
        )

        assert outcome.text == "Hello"
        call = upstream.calls[0]
        assert call["headers"]["Authorization"] == "Bearer sk-1"
        assert call["json"]["temperature"] == 0.2
        assert call["json"]["messages"][0] == {"role": "system", "content": "be brief"}


class TestGenerateImage:
    @pytest.mark.asyncio
    async def test_image_costs_two_credits(self, db_session, gemini, upstream):
        key = await KeyFactory.create_async(db_session, credit=3)
        upstream.queue(
            UpstreamResponse(
                status=200,
                body=json.dumps(
                    {"predictions": [{"bytesBase64Encoded": "aW1n"}]}
                ).encode(),
            )
        )

        outcome = await AIGatewayService(db_session).generate_image(
            key.key, ImageCommand(provider="gemini", prompt="a cat", aspect_ratio="16:9")
        )

        assert outcome.image_data == "aW1n"
        assert outcome.mime_type == "image/png"
        assert outcome.remaining_credit == 1
        assert upstream.calls[0]["json"]["parameters"]["aspectRatio"] == "16:9"

    @pytest.mark.asyncio
    async def test_text_only_provider_rejects_images(self, db_session, upstream):
        key = await KeyFactory.create_async(db_session, credit=3)

        with pytest.raises(UnsupportedProviderError):
            await AIGatewayService(db_session).generate_image(
                key.key, ImageCommand(provider="deepseek", prompt="a cat")
            )
        assert await _balance(db_session, key.key) == 3

    @pytest.mark.asyncio
    async def test_stability_artifact(self, db_session, upstream):
        await ProviderFactory.create_async(
            db_session, name="Stability AI", api_keys=["sk-stab"]
        )
        key = await KeyFactory.create_async(db_session, credit=2)
        upstream.queue(
            UpstreamResponse(
                status=200, body=json.dumps({"artifacts": [{"base64": "c3Rh"}]}).encode()
            )
        )

        outcome = await AIGatewayService(db_session).generate_image(
            key.key, ImageCommand(provider="stability", prompt="a cat")
        )

        assert outcome.image_data == "c3Rh"
        assert outcome.provider == "Stability AI"


class TestProviderKeyCheck:
    @pytest.mark.asyncio
    async def test_valid_key(self, db_session, upstream):
        await ProviderFactory.create_async(db_session, name="OpenAI", api_keys=["sk-1"])
        upstream.queue(UpstreamResponse(status=200, body=b'{"data": []}'))

        outcome = await AIGatewayService(db_session).test_provider_key("openai")

        assert outcome.provider == "openai"
        assert outcome.valid is True
        assert outcome.error_kind is None
        assert upstream.calls[0]["method"] == "GET"
        assert upstream.calls[0]["url"].endswith("/models")
        assert upstream.calls[0]["headers"]["Authorization"] == "Bearer sk-1"

    @pytest.mark.asyncio
    async def test_rejected_key_is_reported_and_deactivated(self, db_session, upstream):
        await ProviderFactory.create_async(
            db_session, name="DeepSeek", api_keys=["ds-dead"]
        )
        upstream.queue(UpstreamResponse(status=401, body=b'{"error": "unauthorized"}'))

        outcome = await AIGatewayService(db_session).test_provider_key("deepseek")

        assert outcome.valid is False
        assert outcome.error_kind == "invalid_key"
        assert "DeepSeek" in outcome.message
        result = await db_session.execute(
            select(ProviderKeyStatus.is_active)
            .where(ProviderKeyStatus.key == "ds-dead")
            .execution_options(populate_existing=True)
        )
        assert result.scalar_one() is False

    @pytest.mark.asyncio
    async def test_timeout_is_reported(self, db_session, gemini, upstream):
        upstream.queue(asyncio.TimeoutError())

        outcome = await AIGatewayService(db_session).test_provider_key("gemini")

        assert outcome.valid is False
        assert outcome.error_kind == "timeout"

    @pytest.mark.asyncio
    async def test_alias_resolves_to_adapter_name(self, db_session, gemini, upstream):
        upstream.queue(UpstreamResponse(status=200, body=b'{"models": []}'))

        outcome = await AIGatewayService(db_session).test_provider_key("google")

        assert outcome.provider == "gemini"
        assert outcome.valid is True
        assert upstream.calls[0]["headers"]["x-goog-api-key"] == "gemini-upstream-1"

    @pytest.mark.asyncio
    async def test_unknown_provider(self, db_session, upstream):
        with pytest.raises(UnsupportedProviderError):
            await AIGatewayService(db_session).test_provider_key("midjourney")
        assert upstream.calls == []

    @pytest.mark.asyncio
    async def test_no_key_configured(self, db_session, upstream):
        with pytest.raises(NoUpstreamKeyError):
            await AIGatewayService(db_session).test_provider_key("openai")
        assert upstream.calls == []
