from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api import health, bridge
from .config import settings
from .core.bridge.orchestrator import close_bridge_orchestrator
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_bridge_orchestrator()


# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="CCTP Bridge API",
    description="USDC burn-and-mint transfers between Base, Polygon and Ethereum",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestLoggingMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(bridge.router, tags=["Bridge"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "CCTP Bridge API",
        "version": "0.1.0",
        "source_chain": settings.source_chain.upper(),
        "docs": "/docs",
        "health": "/healthz"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cctp_bridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
