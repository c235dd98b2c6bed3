import uvicorn

from sharebox.config import settings


def run_backend():
    uvicorn.run(
        "sharebox.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.environment == "development" and settings.debug,
    )


if __name__ == "__main__":
    run_backend()
