# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "regmux[compress] @ file:///${PROJECT_ROOT}/..",
#     "granian[uvloop]>=2.6.0,<3.0.0",
# ]
# ///
"""RSGI server demo.

Fully functional web server using Granian + regmux Router: regular expression
routes with path fields, global and per-route middleware, and static files
served from disk (or from memory with ENV=production).
"""

import asyncio
import json
import logging
import os
import sqlite3
import time
from json.decoder import JSONDecodeError
from pathlib import Path

from granian.server.embed import Server

from regmux import Router, get_field
from regmux.apps.static_files import static_files
from regmux.rsgi import HTTPProtocol, HTTPScope, RSGIHTTPHandler

ADDRESS = "127.0.0.1"
PORT = 8000
STATIC_DIR = Path(__file__).parent / "static"

logger = logging.getLogger("example")

_db = sqlite3.connect(":memory:")
_db.cursor().executescript("""
CREATE TABLE IF NOT EXISTS user (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
""")


async def main() -> None:
    logging.basicConfig(level=logging.INFO)

    router = Router(
        static=static_files(
            "/static",
            directory=STATIC_DIR,
            bundle=STATIC_DIR,
            is_production=os.environ.get("ENV") == "production",
        )
    )
    router.use(access_log)
    router.get("/", home)
    router.get("/user", get_users(_db))
    router.post("/user", create_user(_db), require_json)
    router.get("/user/([0-9]+)", get_user(_db))
    router.finalize()
    print(router.format_routes())

    server = Server(router, address=ADDRESS, port=PORT)
    try:
        await server.serve()
    except asyncio.CancelledError:
        pass


# --- middleware ---------------------------------------------------------------
def access_log(handler: RSGIHTTPHandler) -> RSGIHTTPHandler:
    async def wrapped(s: HTTPScope, p: HTTPProtocol) -> None:
        start = time.perf_counter()
        await handler(s, p)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s %.2fms", s.method, s.path, elapsed_ms)

    return wrapped


def require_json(handler: RSGIHTTPHandler) -> RSGIHTTPHandler:
    async def wrapped(s: HTTPScope, p: HTTPProtocol) -> None:
        if s.headers.get("content-type") != "application/json":
            p.response_str(415, [("Content-Type", "text/plain")], "Expected json")
            return
        await handler(s, p)

    return wrapped


# --- handlers -----------------------------------------------------------------
async def home(s: HTTPScope, p: HTTPProtocol) -> None:
    p.response_str(200, [("Content-Type", "text/plain")], "Welcome home")


# closure over handler to inject dependencies
def get_users(db: sqlite3.Connection) -> RSGIHTTPHandler:
    async def handler(s: HTTPScope, p: HTTPProtocol) -> None:
        cur = db.cursor()
        cur.execute("SELECT * FROM user")
        serialized = json.dumps([{"id": row[0], "name": row[1]} for row in cur])
        p.response_str(200, [("Content-Type", "application/json")], serialized)

    return handler


def get_user(db: sqlite3.Connection) -> RSGIHTTPHandler:
    async def handler(s: HTTPScope, p: HTTPProtocol) -> None:
        cur = db.cursor()
        # the pattern only lets digits through
        cur.execute("SELECT * FROM user WHERE id = ?", (int(get_field(s, 0)),))
        result = cur.fetchone()
        if result is None:
            p.response_str(404, [("Content-Type", "text/plain")], "Not found")
            return
        serialized = json.dumps({"id": result[0], "name": result[1]})
        p.response_str(200, [("Content-Type", "application/json")], serialized)

    return handler


def create_user(db: sqlite3.Connection) -> RSGIHTTPHandler:
    async def handler(s: HTTPScope, p: HTTPProtocol) -> None:
        cur = db.cursor()
        body = await p()
        try:
            payload = json.loads(body)
        except JSONDecodeError:
            p.response_str(422, [("Content-Type", "text/plain")], "Invalid json")
            return
        try:
            name = payload["name"]
        except KeyError:
            p.response_str(422, [("Content-Type", "text/plain")], "Missing name")
            return
        cur.execute("INSERT INTO user (name) VALUES (?) RETURNING *", (name,))
        result = cur.fetchone()
        serialized = json.dumps({"id": result[0], "name": result[1]})
        p.response_str(201, [("Content-Type", "application/json")], serialized)

    return handler


if __name__ == "__main__":
    asyncio.run(main())
