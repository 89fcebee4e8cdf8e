"""Run the Cloister server.

Usage:
  python -m cloister
  python -m cloister --port 4000
"""
from __future__ import annotations

import argparse

import uvicorn

from cloister import config


def main() -> int:
    parser = argparse.ArgumentParser(prog="cloister", description="Local hub for Claude Code history")
    parser.add_argument("--host", default=config.HOST, help=f"Interface to bind (default: {config.HOST})")
    parser.add_argument("-p", "--port", type=int, default=config.PORT, help=f"Port to run on (default: {config.PORT})")
    args = parser.parse_args()
    uvicorn.run("cloister.main:app", host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
