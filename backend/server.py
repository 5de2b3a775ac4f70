from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from app.main import create_app
from services.config import GatewayConfig

# Load .env from backend dir (where server.py runs)
load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))
logging.basicConfig(level=logging.INFO)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

config = GatewayConfig.from_env()
app = create_app(config)
logging.getLogger(__name__).info(
    "Dream service at %s; records in %s; local videos in %s",
    config.backend_url,
    config.records_dir,
    config.video_dir,
)
for route in app.routes:
    if hasattr(route, "path") and hasattr(route, "methods"):
        logging.info("App route: %s %s", sorted(route.methods) if route.methods else "GET", route.path)


def main() -> None:
    host = os.environ.get("HOST", "").strip() or DEFAULT_HOST
    try:
        port = int(os.environ.get("PORT", "").strip() or DEFAULT_PORT)
    except ValueError:
        port = DEFAULT_PORT
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
