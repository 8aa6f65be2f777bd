from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
from contextlib import asynccontextmanager

from identity_service.base_microservice import BaseMicroservice, engine
from identity_service.auth.router import router as auth_router, users_router, start_auth_service
from identity_service.auth.exceptions import register_exception_handlers

API_VERSION = "1.0.0"

# Create shared base microservice instance
base_service = BaseMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    base_service.log_event("service.startup", {"service": "main"})
    await start_auth_service()
    yield
    base_service.log_event("service.shutdown", {"service": "main"})
    await engine.dispose()


# Create main FastAPI app with lifespan
app = FastAPI(
    title="Identity Service API",
    description="Registers users, authenticates credentials and issues signed bearer tokens",
    version=API_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers with prefixes
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(users_router, prefix="/api/users", tags=["users"])


@app.get("/", tags=["root"])
async def root():
    """Root endpoint returning API information."""
    return {
        "name": "Identity Service API",
        "version": API_VERSION,
        "services": ["auth", "users"]
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Overall system health check."""
    return {
        "status": "ok",
        "services": {
            "auth": "online",
            "users": "online"
        }
    }

# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("identity_service.main:app", host="0.0.0.0", port=8000, reload=True)
