import os
from pathlib import Path
from dotenv import load_dotenv

# .env lives in the backend directory
backend_dir = Path(__file__).parent.parent.parent
env_path = backend_dir / ".env"
load_dotenv(env_path)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")

SUPABASE_URL = os.getenv("SUPABASE_URL")

# Supabase Auth (frontend JWT validation and RLS usage)
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")  # never expose to the frontend

# JWKS used to validate JWTs issued by Supabase (public endpoint)
SUPABASE_JWKS_URL = os.getenv("SUPABASE_JWKS_URL") or (
    f"{SUPABASE_URL}/auth/v1/.well-known/jwks.json" if SUPABASE_URL else None
)

# Facebook Marketing API
GRAPH_API_VERSION = os.getenv("GRAPH_API_VERSION", "v22.0")
META_ACCESS_TOKEN = os.getenv("META_ACCESS_TOKEN") or os.getenv("FACEBOOK_ACCESS_TOKEN")
META_AD_ACCOUNT_ID = os.getenv("META_AD_ACCOUNT_ID") or os.getenv("FACEBOOK_AD_ACCOUNT_ID")
META_PAGE_ID = os.getenv("META_PAGE_ID") or os.getenv("FACEBOOK_PAGE_ID")

# Conversions API
CAPI_API_VERSION = os.getenv("CAPI_API_VERSION", "v24.0")
META_DATASET_ID = os.getenv("META_DATASET_ID")
META_CAPI_ACCESS_TOKEN = os.getenv("META_CAPI_ACCESS_TOKEN") or META_ACCESS_TOKEN

# Pool / marketplace
POOL_RATE_LIMIT_PER_HOUR = int(os.getenv("POOL_RATE_LIMIT_PER_HOUR", "100"))

# Creative fatigue analysis
DEFAULT_AUDIENCE_SIZE = int(os.getenv("DEFAULT_AUDIENCE_SIZE", "1000000"))
