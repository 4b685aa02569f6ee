import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# ------------- Database -------------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./thoth.db")

# ------------- Auth -------------
JWT_SECRET = os.getenv("JWT_SECRET_KEY", "CHANGE_THIS_TO_A_LONG_RANDOM_STRING")
JWT_ALGORITHM = "HS256"
INTERNAL_SERVICE_KEY = os.getenv("INTERNAL_SERVICE_KEY")

# ------------- Internal calls -------------
INTERNAL_BASE_URL = os.getenv("INTERNAL_BASE_URL", "http://localhost:8000").rstrip("/")
FLOW_ENGINE_URL = os.getenv("FLOW_ENGINE_URL")

# ------------- LLM gateway -------------
LLM_GATEWAY_URL = os.getenv("LLM_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1").rstrip("/")
LLM_GATEWAY_API_KEY = os.getenv("LLM_GATEWAY_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL", "google/gemini-2.5-flash")

# ------------- Vendors -------------
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
WAPI_BASE_URL = os.getenv("WAPI_BASE_URL", "https://api.w-api.app/v1").rstrip("/")
APIBRASIL_BASE_URL = os.getenv("APIBRASIL_BASE_URL", "https://gateway.apibrasil.io/api/v2").rstrip("/")
EVOLUTION_API_URL = os.getenv("EVOLUTION_API_URL")
EVOLUTION_API_KEY = os.getenv("EVOLUTION_API_KEY")
GUPSHUP_API_URL = os.getenv("GUPSHUP_API_URL", "https://api.gupshup.io/wa/api/v1").rstrip("/")
BITRIX24_CONNECTOR_ID = os.getenv("BITRIX24_CONNECTOR_ID", "thoth_whatsapp")

HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))

if JWT_SECRET == "CHANGE_THIS_TO_A_LONG_RANDOM_STRING":
    logger.warning("⚠️ WARNING: Using default JWT_SECRET. Set JWT_SECRET_KEY in .env for production!")
