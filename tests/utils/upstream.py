"""Stand-in for the upstream network used by gateway tests."""

import json

from src.modules.proxies.pool import UpstreamResponse


def gemini_body(text: str = "Xin chao", total_tokens: int = 12) -> bytes:
    return json.dumps(
        {
            "candidates": [{"content": {"parts": [{"text": text}]}}],
            "usageMetadata": {
                "promptTokenCount": 4,
                "candidatesTokenCount": 8,
                "totalTokenCount": total_tokens,
            },
        }
    ).encode()


class UpstreamRecorder:
    """Replaces the network call; responses are served in order."""

    def __init__(self):
        self.calls: list[dict] = []
        self.responses: list = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    async def __call__(self, pool, method, url, headers, json, timeout, transport=None):
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "json": json}
        )
        response = (
            self.responses.pop(0)
            if self.responses
            else UpstreamResponse(status=200, body=gemini_body())
        )
        if isinstance(response, BaseException):
            raise response
        return response
