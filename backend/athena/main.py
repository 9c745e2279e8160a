from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from athena.core.config import CORS_ORIGINS, LOG_LEVEL
from athena.core.logging_config import setup_http_logging_filter
from athena.routes.ai import router as ai_router
from athena.routes.health import router as health_router
from athena.routes.recommendations import router as recommendations_router
from athena.routes.prompts import router as prompts_router
from athena.routes.preferences import router as preferences_router
from athena.routes.traits import router as traits_router
from athena.routes.messages import router as messages_router
from athena.routes.data_pools import router as data_pools_router
from athena.routes.pool import router as pool_router
from athena.routes.facebook import router as facebook_router
from athena.routes.capi import router as capi_router

VERSION = "0.1.0"

# Configure logging
logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper()))
logger = logging.getLogger(__name__)

# Mask access tokens and truncate long URLs in HTTP client logs
setup_http_logging_filter(max_url_length=300)

app = FastAPI(
    title="Athena Backend API",
    description="Backend API for Athena ad performance analytics",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(ai_router)
app.include_router(recommendations_router)
app.include_router(prompts_router)
app.include_router(preferences_router)
app.include_router(traits_router)
app.include_router(messages_router)
app.include_router(data_pools_router)
app.include_router(pool_router)
app.include_router(facebook_router)
app.include_router(capi_router)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"message": "Athena Backend API is running", "version": VERSION}


@app.get("/health")
def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "athena-backend",
        "version": VERSION,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
