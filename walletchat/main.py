from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import chat, health, market, swap
from .config import settings
from .dependencies import shutdown_services
from .logging_config import setup_logging

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await shutdown_services()


# Create FastAPI app
app = FastAPI(
    title="Wallet Chat API",
    description="Natural-language assistant for a Solana wallet",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(chat.router, tags=["Chat"])
app.include_router(market.router, tags=["Market"])
app.include_router(swap.router, tags=["Swap"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Wallet Chat API",
        "version": "0.1.0",
        "description": "Natural-language assistant for a Solana wallet",
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "walletchat.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
