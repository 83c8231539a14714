import uvicorn

from page_analyzer.app.settings import load_settings


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        "page_analyzer.app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
