"""Run the HotelHub API server."""

import logging

import uvicorn

from hotelhub.api.config import Settings

if __name__ == "__main__":
    settings = Settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "hotelhub.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
