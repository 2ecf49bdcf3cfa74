"""Assertions for the CreditGate response envelopes."""

from typing import Any

from httpx import Response

from src.api.core.messages import MessageCode
from src.core.errors import ErrorCategory


def _dig(data: Any, path: str) -> Any:
    for part in path.split("."):
        data = data[part]
    return data


def _assert_status_and_code(
    response: Response, expected_message_code: MessageCode, expected_status: int
) -> dict[str, Any]:
    assert response.status_code == expected_status, (
        f"Expected status {expected_status}, got {response.status_code}. "
        f"Response: {response.text}"
    )
    json_data = response.json()
    assert json_data.get("message_code") == expected_message_code.value, (
        f"Expected message_code {expected_message_code.value}, "
        f"got {json_data.get('message_code')}"
    )
    return json_data


def assert_success_response(
    response: Response,
    expected_message_code: MessageCode = MessageCode.SUCCESS,
    expected_status: int = 200,
    data_assertions: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Assert an ``APIResponse`` envelope and return its ``data``.

    ``data_assertions`` keys may be dotted paths such as ``payment.status``.
    """
    data = _assert_status_and_code(
        response, expected_message_code, expected_status
    ).get("data")
    for path, expected_value in (data_assertions or {}).items():
        current = _dig(data, path)
        assert (
            current == expected_value
        ), f"Expected {path} to be {expected_value}, got {current}"
    return data


def assert_error_response(
    response: Response,
    expected_message_code: MessageCode,
    expected_status: int,
    expected_category: ErrorCategory | None = None,
) -> dict[str, Any]:
    """Assert an error envelope; domain errors also carry their category."""
    json_data = _assert_status_and_code(
        response, expected_message_code, expected_status
    )
    assert set(json_data) >= {"message_code", "message", "details"}
    if expected_category is not None:
        assert json_data["details"].get("category") == expected_category.value
    return json_data


def assert_validation_error(response: Response) -> dict[str, Any]:
    """Assert that response is a request validation error."""
    return assert_error_response(response, MessageCode.INVALID_INPUT, 422)
