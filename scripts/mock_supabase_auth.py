#!/usr/bin/env python3
"""Stand-in for the Supabase ``/auth/v1/user`` endpoint, backed by the demo seed accounts."""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from app.core.auth import parse_bearer_token
from seed_adverts import account_id_for

SELLER_PREFIX = "seller"
TOKEN_SUFFIX = "-token"


def user_for_token(token: str, *, accounts: int) -> dict[str, object] | None:
    """Tokens look like ``seller3-token`` and resolve to seeded account ``seller3``."""
    name, suffix = token[: -len(TOKEN_SUFFIX)], token[-len(TOKEN_SUFFIX) :]
    if suffix != TOKEN_SUFFIX or not name.startswith(SELLER_PREFIX):
        return None
    index = name[len(SELLER_PREFIX) :]
    if not index.isdigit() or not 1 <= int(index) <= accounts:
        return None
    return {
        "id": account_id_for(name),
        "aud": "authenticated",
        "email": f"{name}@example.com",
        "app_metadata": {"provider": "email"},
        "user_metadata": {"name": name},
    }


def build_handler(accounts: int) -> type[BaseHTTPRequestHandler]:
    class MockSupabaseHandler(BaseHTTPRequestHandler):
        server_version = "MockSupabase/1.0"

        def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
            path = urlsplit(self.path).path
            if path == "/healthz":
                self._write_json(HTTPStatus.OK, {"status": "ok"})
                return
            if path != "/auth/v1/user":
                self._write_json(HTTPStatus.NOT_FOUND, {"msg": "not found"})
                return
            if not self.headers.get("apikey"):
                self._write_json(HTTPStatus.UNAUTHORIZED, {"msg": "no api key found in request"})
                return

            token = parse_bearer_token(self.headers.get("Authorization"))
            user = user_for_token(token, accounts=accounts) if token else None
            if user is None:
                self._write_json(HTTPStatus.FORBIDDEN, {"msg": "invalid JWT"})
                return
            self._write_json(HTTPStatus.OK, user)

        def log_message(self, format: str, *args: object) -> None:
            print("mock-supabase:", format % args, flush=True)

        def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
            raw = json.dumps(payload).encode("utf-8")
            self.send_response(status.value)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(raw)))
            self.end_headers()
            self.wfile.write(raw)

    return MockSupabaseHandler


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth for the seeded demo sellers.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    parser.add_argument("--accounts", type=int, default=10, help="Highest sellerN accepted; match seed_adverts.py")
    args = parser.parse_args()

    server = ThreadingHTTPServer((args.host, args.port), build_handler(args.accounts))
    print(f"mock-supabase listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
