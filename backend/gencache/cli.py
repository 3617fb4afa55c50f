# gencache/cli.py
import argparse
import asyncio
import os
import sys

import uvicorn

from gencache.core.config import get_settings
from gencache.core.logging import setup_logging
from gencache.services.cache.constants import NAMESPACES
from gencache.services.generation import build_generation_service


def dev() -> None:
    uvicorn.run("gencache.main:app", host="0.0.0.0", port=8000, reload=True)


def start() -> None:
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("gencache.main:app", host="0.0.0.0", port=port)


async def _invalidate(namespace: str, durable: bool) -> int:
    service = await build_generation_service(get_settings())
    try:
        result = await service.invalidate_namespace(namespace, durable=durable)
    finally:
        await service.close()
    print(
        f"{result.namespace}: {result.ephemeral_deleted} ephemeral, "
        f"{result.durable_deleted} durable entries removed"
    )
    return 0


def invalidate(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="gencache-invalidate",
        description=(
            "Drop the ephemeral entries of a namespace. Reads refill them from "
            "the durable store, so pass --durable to force regeneration."
        ),
    )
    parser.add_argument("namespace", choices=sorted(NAMESPACES))
    parser.add_argument(
        "--durable",
        action="store_true",
        help="also delete artifacts from the durable store so they are regenerated",
    )
    args = parser.parse_args(argv)
    setup_logging()
    sys.exit(asyncio.run(_invalidate(args.namespace, args.durable)))


def pytest() -> None:
    import pytest
    # Run all tests in the backend/tests/ directory, stop after first failure
    sys.exit(pytest.main(["-x", "backend/tests"]))
