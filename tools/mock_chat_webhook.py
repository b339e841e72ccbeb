"""
Lightweight mock Discord-style chat webhook for live e2e testing.

Endpoints:
- POST /api/webhooks/<anything>  -> stores message, returns 204 (or the forced status)
- GET  /_messages                -> returns all stored messages
- GET  /_last                    -> returns last message
- POST /_reset                   -> clears stored messages and forced status
- POST /_fail?status=500         -> answer the next webhook call with the given status
- GET  /_health                  -> returns 200
"""
import json
import os
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import List, Optional
from urllib.parse import parse_qs, urlparse


MESSAGES: List[dict] = []
FORCED_STATUS: Optional[int] = None


class Handler(BaseHTTPRequestHandler):
    def _send_json(self, status_code: int, payload: dict) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_empty(self, status_code: int) -> None:
        self.send_response(status_code)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self):  # noqa: N802
        if self.path == "/_health":
            return self._send_json(200, {"status": "ok"})

        if self.path == "/_messages":
            return self._send_json(200, {"messages": MESSAGES})

        if self.path == "/_last":
            return self._send_json(200, {"last": MESSAGES[-1] if MESSAGES else None})

        return self._send_json(404, {"error": "not_found"})

    def do_POST(self):  # noqa: N802
        global FORCED_STATUS

        url = urlparse(self.path)

        if url.path == "/_reset":
            MESSAGES.clear()
            FORCED_STATUS = None
            return self._send_json(200, {"status": "reset"})

        if url.path == "/_fail":
            FORCED_STATUS = int(parse_qs(url.query).get("status", ["500"])[0])
            return self._send_json(200, {"status": "armed", "next_status": FORCED_STATUS})

        if url.path.startswith("/api/webhooks/"):
            length = int(self.headers.get("Content-Length", "0"))
            raw = self.rfile.read(length).decode("utf-8") if length else ""
            try:
                payload = json.loads(raw) if raw else {}
            except json.JSONDecodeError:
                payload = {"_raw": raw}

            if FORCED_STATUS is not None:
                status, FORCED_STATUS = FORCED_STATUS, None
                return self._send_json(status, {"message": "forced failure", "code": status})

            MESSAGES.append({
                "path": url.path,
                "headers": {k.lower(): v for k, v in self.headers.items()},
                "payload": payload,
            })
            return self._send_empty(204)

        return self._send_json(404, {"error": "not_found"})

    def log_message(self, format, *args):  # noqa: A003
        # Silence default logging to keep test output clean.
        return


def main() -> None:
    port = int(os.getenv("MOCK_WEBHOOK_PORT", "8090"))
    server = HTTPServer(("0.0.0.0", port), Handler)
    server.serve_forever()


if __name__ == "__main__":
    main()
