"""
channelsync Multi-Channel Dashboard
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from channelsync import __version__
from channelsync.config import get_settings
from channelsync.utils.cache import ClientCache
from channelsync.utils.logger import log

# Import routers
from channelsync.api import credentials, customers, health, orders, products, sync

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from channelsync.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for automated syncs
    if settings.enable_scheduler:
        from channelsync.scheduler import start_scheduler
        try:
            start_scheduler(app.state.cache)
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if settings.enable_scheduler:
        from channelsync.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Multi-channel commerce dashboard API

    - Reads products and orders from the Shopify storefront and connected marketplaces
    - Keeps the website product database in step with Shopify
    - Merges customers across platforms by email
    - Stores marketplace credentials encrypted and reports which platforms are connected
    """,
    lifespan=lifespan
)

# One cache per process, injected into the routers through app.state
app.state.cache = ClientCache(ttl_seconds=settings.cache_ttl_hours * 3600)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(customers.router)
app.include_router(credentials.router)
app.include_router(sync.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "list_products": "GET /products?source=website",
            "create_product": "POST /products",
            "merged_products": "GET /products?source=all",
            "update_product": "PUT /products/{id}",
            "link_product": "POST /products/{id}/platforms/{platform}",
            "list_orders": "GET /orders?source=shopify",
            "list_customers": "GET /customers",
            "credential_status": "GET /credentials/status",
            "save_credentials": "POST /credentials/{platform}",
            "sync_all": "POST /sync",
            "sync_history": "GET /sync/history",
            "dashboard_stats": "GET /dashboard/stats",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "channelsync.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
