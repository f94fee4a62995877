import uvicorn

from eq_coach.config import setup_logging


def main(host: str = "127.0.0.1", port: int = 8010, reload: bool = False):
    setup_logging()
    uvicorn.run("eq_coach.main:app", host=host, port=port, log_level="info", reload=reload)


if __name__ == "__main__":
    main()
