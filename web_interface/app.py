# web_interface/app.py

from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import the lifecycle functions from main.py
from main import actual_start_services, actual_shutdown_services
from main import logger as main_logger # Use the logger setup in main.py

from . import routes_api, ws_events # Relative imports for local package

API_PREFIX = "/api/ami"
AVAILABLE_ROUTES = [
    f"POST {API_PREFIX}/connect",
    f"POST {API_PREFIX}/disconnect",
    f"GET  {API_PREFIX}/status",
    f"POST {API_PREFIX}/originate",
    f"GET  {API_PREFIX}/channels",
    f"GET  {API_PREFIX}/pjsip-endpoints",
    "GET  /health",
    "WS   /ws/ami-events",
]


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None, None]:
    main_logger.info("Lifespan: Application startup sequence initiated...")
    app_instance.state.ami_bridge = await actual_start_services()
    main_logger.info("Lifespan: AMI bridge ready. Available endpoints:")
    for route in AVAILABLE_ROUTES:
        main_logger.info(f"  {route}")

    try:
        yield # Application runs here
    finally:
        main_logger.info("Lifespan: Application shutdown sequence initiated...")
        try:
            await actual_shutdown_services()
        except Exception as e_shutdown:
            main_logger.error(f"Lifespan: Error during actual_shutdown_services: {e_shutdown}", exc_info=True)
        main_logger.info("Lifespan: Application shutdown sequence finished.")

# Create the FastAPI application instance
app = FastAPI(
    title="AMI Bridge",
    description="HTTP and WebSocket bridge to the Asterisk Manager Interface.",
    version="1.0.0",
    lifespan=lifespan
)

# Browser clients are served from other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(routes_api.router, prefix=API_PREFIX, tags=["AMI"])
app.include_router(ws_events.router, tags=["Events"])


@app.get("/health")
async def health(request: Request):
    bridge = request.app.state.ami_bridge
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ami_connected": bridge.is_connected if bridge else False,
    }


@app.exception_handler(404)
async def route_not_found(request: Request, exc: Exception):
    main_logger.info(f"[API] 404 - Route not found: {request.method} {request.url.path}")
    return JSONResponse(status_code=404, content={
        "success": False,
        "error": f"Route not found: {request.method} {request.url.path}",
        "available_routes": AVAILABLE_ROUTES,
    })
