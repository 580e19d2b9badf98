import logging

import uvicorn

from config import settings

if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    logging.getLogger(__name__).info(f"Serving {settings.app_name} on {settings.api_host}:{settings.api_port}")
    uvicorn.run(
        "src.api:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
