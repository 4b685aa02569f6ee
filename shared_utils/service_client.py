"""
Service Client for internal service-to-service calls
Chains webhook ingestion -> AI dispatch over same-origin HTTP with the shared service key
"""

import httpx
import logging
from typing import Optional, Dict, Any
from config import settings

logger = logging.getLogger(__name__)


class ServiceClient:
    """Client for authenticated internal API calls"""

    def __init__(self, base_url: Optional[str] = None, service_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.INTERNAL_BASE_URL).rstrip("/")
        self.transport = transport
        self.service_key = service_key or settings.INTERNAL_SERVICE_KEY

        if not self.service_key:
            logger.error("Missing INTERNAL_SERVICE_KEY for internal calls")
            raise ValueError("Missing environment variable: INTERNAL_SERVICE_KEY")

    def get_headers(self, workspace_id: Optional[str] = None) -> Dict[str, str]:
        headers = {
            'X-Service-Key': self.service_key,
            'Content-Type': 'application/json',
        }

        if workspace_id:
            headers['X-Workspace-Id'] = workspace_id

        return headers

    def build_url(self, path_or_url: str) -> str:
        if path_or_url.startswith("http://") or path_or_url.startswith("https://"):
            return path_or_url
        return f"{self.base_url}/{path_or_url.lstrip('/')}"

    async def post(
        self,
        path_or_url: str,
        data: Dict[str, Any],
        workspace_id: Optional[str] = None,
        timeout: float = 60.0
    ) -> Dict[str, Any]:
        """
        POST to another internal handler

        Raises:
            httpx.HTTPError: If the request fails or returns non-2xx
        """
        url = self.build_url(path_or_url)
        try:
            logger.info(f"🔄 Service POST: {url} (workspace: {workspace_id})")

            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    url,
                    headers=self.get_headers(workspace_id),
                    json=data,
                    timeout=timeout
                )
                response.raise_for_status()

            logger.info(f"✅ Service POST success: {url} ({response.status_code})")
            return response.json() if response.content else {}

        except httpx.HTTPError as e:
            logger.error(f"❌ Service POST failed: {url} - {str(e)}")
            raise
