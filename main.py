"""
Main entry point for priordeed.
Modes:
  <address>: Fetch the prior deed for one address and write the PDF
  --web: Start the API server
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from loguru import logger

from priordeed.config import Settings
from priordeed.service import fetch_prior_deed
from priordeed.utils.logging_config import setup_default_logging


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def intercept_std_logging() -> None:
    # Playwright, uvicorn, urllib3 etc. log through the standard library
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    for logger_name in ["playwright", "uvicorn", "uvicorn.error", "uvicorn.access", "asyncio", "urllib3"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


def handle_fetch(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    if args.headed:
        settings = replace(settings, headless=False)

    result = asyncio.run(fetch_prior_deed(args.address, county=args.county, state=args.state, settings=settings))

    if args.json:
        payload = result.to_payload()
        payload.pop("pdfBase64", None)
        payload["diagnostics"] = result.diagnostics
        print(json.dumps(payload, indent=2))

    if not result.success:
        logger.error(f"Failed at {result.failure_stage.value}: {result.error}")
        for line in result.diagnostics:
            logger.debug(line)
        return 1

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / result.filename
    path.write_bytes(result.pdf_bytes)
    logger.success(f"Saved {path} ({result.file_size_bytes / 1024:.1f} KB, {result.elapsed_millis} ms)")
    return 0


def handle_web(port: int):
    """Start the FastAPI server (app/web)."""
    import uvicorn

    logger.info(f"Starting API server on port {port}...")
    logger.info(f"Local Access: http://localhost:{port}/api/getPriorDeed")
    uvicorn.run(
        "app.web.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        log_level="info",
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Fetch the prior recorded deed for an address as one PDF")
    parser.add_argument("address", nargs="?", help='Property address, e.g. "123 Main St, Tampa, FL"')
    parser.add_argument("--county", default=None, help="County name (skips the geocoder together with --state)")
    parser.add_argument("--state", default=None, help="Two-letter state code")
    parser.add_argument("--out", default="downloads", help="Directory for the PDF (default downloads)")
    parser.add_argument("--json", action="store_true", help="Print the result payload as JSON (without the PDF)")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--web", action="store_true", help="Start the API server")
    parser.add_argument("--port", type=int, default=int(os.getenv("WEB_PORT", "8080")),
                        help="Port for the API server (default 8080 or WEB_PORT env var)")

    args = parser.parse_args(argv)

    setup_default_logging()
    intercept_std_logging()

    if args.web:
        handle_web(args.port)
        return 0
    if not args.address:
        parser.error("an address is required unless --web is given")
    return handle_fetch(args)


if __name__ == "__main__":
    sys.exit(main())
