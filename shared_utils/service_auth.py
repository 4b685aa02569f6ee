"""
Service Authentication Key Management
Validates the shared key carried by internal service-to-service calls
"""

import hmac
import secrets
from typing import Optional
from config import settings


def verify_service_key(provided_key: Optional[str]) -> bool:
    """Constant-time comparison against INTERNAL_SERVICE_KEY; always False when unset"""
    expected = settings.INTERNAL_SERVICE_KEY
    if not expected or not provided_key:
        return False
    return hmac.compare_digest(provided_key.encode(), expected.encode())


def generate_service_key() -> str:
    """Generate a new key in the format sk_internal_{random}"""
    return f"sk_internal_{secrets.token_urlsafe(32)}"


if __name__ == "__main__":
    print(f"INTERNAL_SERVICE_KEY={generate_service_key()}")
