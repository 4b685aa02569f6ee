"""
Bitrix24 REST client.

Works either through an incoming-webhook URL (the URL embeds the credentials) or
through OAuth, refreshing the access token when it is within ten minutes of expiry.
"""
import logging
import httpx
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from config import settings
from config.database import utcnow
from integrations.crud import update_integration_config, record_integration_error
from integrations.models import Integration

logger = logging.getLogger(__name__)

OAUTH_TOKEN_URL = "https://oauth.bitrix.info/oauth/token/"
TOKEN_REFRESH_BUFFER = timedelta(minutes=10)


class Bitrix24Error(Exception):
    pass


class Bitrix24AuthError(Bitrix24Error):
    pass


def parse_expiry(value) -> Optional[datetime]:
    """token_expires_at is stored as ISO-8601; returned naive UTC"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class Bitrix24Client:

    def __init__(self, db: Session, integration: Integration, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.integration = integration
        self.transport = transport

    @property
    def config(self) -> Dict[str, Any]:
        return self.integration.config or {}

    @property
    def uses_webhook(self) -> bool:
        return bool(self.config.get("webhook_url")) and not self.config.get("access_token")

    def token_needs_refresh(self, now: Optional[datetime] = None) -> bool:
        expires_at = parse_expiry(self.config.get("token_expires_at"))
        if expires_at is None:
            # Unknown expiry: refresh whenever we can
            return bool(self.config.get("refresh_token")) or not self.config.get("access_token")
        return expires_at - (now or utcnow()) <= TOKEN_REFRESH_BUFFER

    async def ensure_access_token(self) -> str:
        """
        Return a usable access token, refreshing it once if it is about to expire.

        Refresh failures are written to integration.last_error and raised as
        Bitrix24AuthError; there is no retry.
        """
        if not self.token_needs_refresh():
            return self.config["access_token"]

        refresh_token = self.config.get("refresh_token")
        if not refresh_token:
            return self._fail_auth("Bitrix24 token expired and no refresh token is available")

        logger.info(f"🔄 Refreshing Bitrix24 token for integration {self.integration.id}")
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=settings.HTTP_TIMEOUT) as client:
                response = await client.get(OAUTH_TOKEN_URL, params={
                    "grant_type": "refresh_token",
                    "client_id": self.config.get("client_id", ""),
                    "client_secret": self.config.get("client_secret", ""),
                    "refresh_token": refresh_token,
                })
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return self._fail_auth(f"Bitrix24 token refresh failed: {str(e)}")

        if response.status_code >= 400 or data.get("error") or not data.get("access_token"):
            return self._fail_auth(f"Bitrix24 token refresh failed: {data.get('error_description') or data.get('error') or response.status_code}")

        expires_at = utcnow() + timedelta(seconds=int(data.get("expires_in") or 3600))
        self.integration = update_integration_config(
            self.db,
            self.integration,
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            token_expires_at=expires_at.isoformat(),
        )
        self.integration.last_error = None
        self.db.commit()
        logger.info(f"✅ Bitrix24 token refreshed, expires at {expires_at.isoformat()}")
        return data["access_token"]

    def _fail_auth(self, message: str):
        logger.error(f"❌ {message}")
        record_integration_error(self.db, self.integration, message)
        raise Bitrix24AuthError(message)

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Invoke a REST method and return its `result`"""
        params = params or {}
        query = {}
        if self.uses_webhook:
            url = f"{self.config['webhook_url'].rstrip('/')}/{method}"
        else:
            domain = self.config.get("domain")
            if not domain:
                raise Bitrix24Error("Bitrix24 integration has no domain configured")
            query["auth"] = await self.ensure_access_token()
            url = f"https://{domain}/rest/{method}"

        logger.info(f"🔄 Bitrix24 call: {method}")
        async with httpx.AsyncClient(transport=self.transport, timeout=settings.HTTP_TIMEOUT) as client:
            response = await client.post(url, params=query, json=params)

        if response.status_code == 401:
            message = f"Bitrix24 rejected credentials for {method}"
            return self._fail_auth(message)

        try:
            data = response.json()
        except ValueError:
            raise Bitrix24Error(f"Bitrix24 returned non-JSON response ({response.status_code})")

        if data.get("error"):
            raise Bitrix24Error(data.get("error_description") or data["error"])
        if response.status_code >= 400:
            raise Bitrix24Error(f"Bitrix24 error: {response.status_code}")

        return data.get("result")
