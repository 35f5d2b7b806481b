"""
Pagehost API server.

Starts the extension host on startup and mounts the /extensions router.
"""

import logging

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from extensions.host import ExtensionHost
from services.extension_endpoints import router as extensions_router, set_host
from services.host_config import get_host_config

load_dotenv()

config = get_host_config()

logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Pagehost API")
app.include_router(extensions_router)

host = ExtensionHost.from_config(config)


@app.on_event("startup")
async def startup():
    """Discover and load extensions on startup"""
    logger.info(f"Extension roots: {', '.join(str(r) for r in host.roots)}")
    await host.start()
    set_host(host)
    for diagnostic in host.diagnostics:
        logger.warning(f"Startup diagnostic: {diagnostic}")


@app.on_event("shutdown")
async def shutdown():
    """Unload extensions so their unregister hooks run"""
    set_host(None)
    await host.shutdown()


@app.get("/health")
async def health():
    return {"status": "ok", "started": host.started}


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
