import argparse
import logging

import uvicorn

from lesson_tutor.config import LOG_LEVEL

parser = argparse.ArgumentParser(description="Run the Lesson Tutor API server.")
parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
parser.add_argument("--log-level", default=LOG_LEVEL, help="Log level for the server and provider clients")
parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")


def main(argv=None) -> None:
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper())
    for logger_name in ["openai", "httpx"]:
        logging.getLogger(logger_name).setLevel(args.log_level.upper())

    uvicorn.run(
        "lesson_tutor.api:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
