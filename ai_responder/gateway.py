"""
OpenAI-compatible chat-completion gateway client
"""
import logging
import httpx
from typing import List, Dict, Optional
from config import settings

logger = logging.getLogger(__name__)

MAX_TOKENS = 1024


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RateLimitError(GatewayError):
    status_code = 429


class PaymentRequiredError(GatewayError):
    status_code = 402


class ChatCompletionGateway:

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.LLM_GATEWAY_URL).rstrip("/")
        self.api_key = api_key or settings.LLM_GATEWAY_API_KEY
        self.model = model or settings.LLM_MODEL
        self.transport = transport
        if not self.api_key:
            raise GatewayError("LLM_GATEWAY_API_KEY is not configured")

    async def complete(self, messages: List[Dict[str, str]], temperature: float = 0.7) -> str:
        """
        Return the assistant reply for `messages`.

        Raises RateLimitError on 429, PaymentRequiredError on 402 and GatewayError for
        any other failure, including an empty reply.
        """
        logger.info(f"🔄 Chat completion with {self.model} ({len(messages)} messages)")
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=settings.HTTP_TIMEOUT * 2) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "messages": messages,
                        "temperature": temperature,
                        "max_tokens": MAX_TOKENS,
                    },
                )
        except httpx.HTTPError as e:
            raise GatewayError(f"AI gateway unreachable: {str(e)}")

        if response.status_code == 429:
            logger.warning("⚠️ AI gateway rate limited")
            raise RateLimitError("Rate limit exceeded, please try again later")
        if response.status_code == 402:
            logger.warning("⚠️ AI gateway credits exhausted")
            raise PaymentRequiredError("AI credits exhausted")
        if response.status_code >= 400:
            logger.error(f"❌ AI gateway error {response.status_code}: {response.text[:300]}")
            raise GatewayError(f"AI gateway error: {response.status_code}")

        data = response.json()
        choices = data.get("choices") or [{}]
        reply = ((choices[0] or {}).get("message") or {}).get("content")
        if not reply:
            raise GatewayError("No response from AI")

        logger.info(f"✅ Chat completion returned {len(reply)} chars")
        return reply
