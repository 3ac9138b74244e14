"""
CLI client for the chat relay.

Supports:
- HTTP register / login:          POST /api/register/, POST /api/login/
- HTTP contacts:                  GET/POST /api/contacts/ (X-Session-Key header)
- WebSocket chat:                 /ws/chat/<session_key>/

WebSocket protocol (`ChatConsumer`):
- Client sends:
  {"type":"chatMessage","toUserId":"<uuid>","message":"..."}
  {"type":"typingIndicator","toUserId":"<uuid>","isTyping":true|false}
  {"type":"readReceipt","toUserId":"<original sender uuid>","messageId":"..."}
- Server sends:
  - {"type":"chatMessage","fromUserId":...,"fromUsername":...,"toUserId":...,"messageId":...,"timestamp":...,"message":...}
  - {"type":"statusMessage","userId":...,"username":...,"status":"online"|"offline"}
  - {"type":"readReceipt","fromUserId":...,"messageId":...}
  - {"type":"typingIndicator","fromUserId":...,"isTyping":...}

Interactive chat commands:
  <text>                  send <text> to the current target
  /to <user_id>           change the target user
  /typing on|off          send a typing indicator to the target
  /read <msg_id>          acknowledge a message from the target
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional

SESSION_HEADER = "X-Session-Key"


def _rstrip_slash(s: str) -> str:
    return s[:-1] if s.endswith("/") else s


def _ws_chat_url(ws_base: str, session_key: str) -> str:
    return f"{_rstrip_slash(ws_base)}/ws/chat/{session_key}/"


def _http_url(http_base: str, path: str) -> str:
    return f"{_rstrip_slash(http_base)}{path}"


async def _stdin_lines() -> str:
    return await asyncio.to_thread(sys.stdin.readline)


async def _next_line(reader: "asyncio.Future[Any]") -> Optional[str]:
    """
    Next stdin line without its newline.

    None at EOF, or as soon as `reader` (the socket side) finishes while stdin is idle.
    """
    read = asyncio.ensure_future(_stdin_lines())
    done, _ = await asyncio.wait({read, reader}, return_when=asyncio.FIRST_COMPLETED)
    if read not in done:
        read.cancel()
        return None
    raw = read.result()
    if raw == "":
        return None
    return raw.rstrip("\n")


class HttpClient:
    def __init__(self, http_base: str, session_key: Optional[str] = None):
        self.http_base = http_base
        self.session_key = session_key
        self._session = None

    async def __aenter__(self) -> "HttpClient":
        try:
            import aiohttp  # type: ignore
        except ImportError:
            print("Missing dependency: aiohttp. Install with: pip install 'chat-relay[client]'", file=sys.stderr)
            raise

        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _headers(self) -> Dict[str, str]:
        h: Dict[str, str] = {"Content-Type": "application/json"}
        if self.session_key:
            h[SESSION_HEADER] = self.session_key
        return h

    async def request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        assert self._session is not None
        url = _http_url(self.http_base, path)
        data = json.dumps(payload) if payload is not None else None
        async with self._session.request(method, url, headers=self._headers(), data=data) as resp:
            text = await resp.text()
            try:
                body = json.loads(text) if text else {}
            except json.JSONDecodeError:
                raise RuntimeError(f"Non-JSON response from {path}: {resp.status} {text}")
            if resp.status >= 400:
                message = body.get("message") if isinstance(body, dict) else body
                raise RuntimeError(f"HTTP {resp.status}: {message}")
            return body


def _render(frame: Dict[str, Any]) -> str:
    t = frame.get("type")
    if t == "chatMessage":
        return f"[{frame.get('timestamp')}] {frame.get('fromUsername')}: {frame.get('message')}  (id={frame.get('messageId')})"
    if t == "statusMessage":
        return f"* {frame.get('username')} ({frame.get('userId')}) is {frame.get('status')}"
    if t == "typingIndicator":
        return f"* {frame.get('fromUserId')} {'is typing' if frame.get('isTyping') else 'stopped typing'}"
    if t == "readReceipt":
        return f"* {frame.get('fromUserId')} read {frame.get('messageId')}"
    return json.dumps(frame, ensure_ascii=False)


async def ws_chat(*, ws_base: str, session_key: str, to_user_id: Optional[str]) -> int:
    try:
        import websockets  # type: ignore
    except ImportError:
        print("Missing dependency: websockets. Install with: pip install 'chat-relay[client]'", file=sys.stderr)
        return 2

    target = to_user_id

    async with websockets.connect(_ws_chat_url(ws_base, session_key)) as ws:

        async def _print_incoming() -> None:
            async for raw in ws:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                sys.stdout.write(_render(frame) + "\n")
                sys.stdout.flush()

        async def _send(frame: Dict[str, Any]) -> None:
            await ws.send(json.dumps(frame, separators=(",", ":"), ensure_ascii=False))

        reader = asyncio.create_task(_print_incoming())
        sys.stderr.write("Connected. Type a line and press Enter to send. Ctrl+C to quit.\n")
        sys.stderr.flush()
        try:
            while True:
                line = await _next_line(reader)
                if line is None:
                    break
                if not line:
                    continue
                if line.startswith("/to "):
                    target = line[4:].strip()
                    continue
                if not target:
                    sys.stderr.write("No target user; use /to <user_id>\n")
                    continue
                if line.startswith("/typing "):
                    await _send({"type": "typingIndicator", "toUserId": target, "isTyping": line[8:].strip() == "on"})
                elif line.startswith("/read "):
                    await _send({"type": "readReceipt", "toUserId": target, "messageId": line[6:].strip()})
                else:
                    await _send({"type": "chatMessage", "toUserId": target, "message": line})
        finally:
            reader.cancel()

    sys.stderr.write("Connection closed.\n")
    return 0


async def main() -> int:
    parser = argparse.ArgumentParser(description="CLI client for the chat relay")
    parser.add_argument("--http", default="http://localhost:8000", help="HTTP base, e.g. http://localhost:8000")
    parser.add_argument("--ws", default="ws://localhost:8000", help="WS base, e.g. ws://localhost:8000")
    parser.add_argument("--session-key", help="Session credential from register/login")

    sub = parser.add_subparsers(dest="cmd", required=True)

    for name in ("register", "login"):
        p = sub.add_parser(name, help=f"{name.capitalize()} and print the session credential")
        p.add_argument("--username", required=True)
        p.add_argument("--password", required=True)

    p_add = sub.add_parser("add-contact", help="Add a mutual contact")
    p_add.add_argument("--contact", required=True, help="Contact's username")

    sub.add_parser("contacts", help="List contacts")

    p_chat = sub.add_parser("chat", help="Connect over WebSocket and chat interactively")
    p_chat.add_argument("--to", help="Target user id")

    args = parser.parse_args()

    if args.cmd in ("register", "login"):
        async with HttpClient(args.http) as http:
            data = await http.request("POST", f"/api/{args.cmd}/", {"username": args.username, "password": args.password})
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0

    if not args.session_key:
        parser.error("--session-key is required for this command")

    if args.cmd == "chat":
        return await ws_chat(ws_base=args.ws, session_key=args.session_key, to_user_id=args.to)

    async with HttpClient(args.http, args.session_key) as http:
        if args.cmd == "add-contact":
            await http.request("POST", "/api/contacts/", {"contactUsername": args.contact})
            print(f"Added {args.contact}")
            return 0
        if args.cmd == "contacts":
            data = await http.request("GET", "/api/contacts/")
            print(json.dumps(data, indent=2, ensure_ascii=False))
            return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
