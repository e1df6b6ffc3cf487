"""
server.py: development server with live reload for one sketch.

HTTP and the live-reload WebSocket share a single port:

    GET /                                  index.html (static dir or built-in)
    GET /bundle.js                         the sketch, bundled on request
    GET /canvas-sketch-client/live.js      live-reload client
    GET /canvas-sketch-client/commit-hash  {"hash": ..., "timestamp": ...}
    GET /<anything else>                   static files
    WS  /livereload                        reload notifications

The browser may send {"event": "commit"} over the socket; the server pushes
{"event": "reload"} whenever a watched file changes.
"""

import asyncio
import email.utils
import http
import json
import mimetypes
import os
import webbrowser
from urllib.parse import unquote, urlsplit

import websockets
from rich.markup import escape
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from websockets.asyncio.server import broadcast, serve
from websockets.datastructures import Headers
from websockets.http11 import Response

from . import commit as commit_module
from .bundler import Bundler
from .output import SketchError, console, error_console, status
from .plugin_resolve import patch_resolver
from .sketches import TEMPLATE_DIRECTORY


HOST = "localhost"
PORT = 9966
WATCH_INTERVAL = 0.25
WATCH_EXTENSIONS = (".js", ".mjs", ".json", ".glsl", ".frag", ".vert", ".html", ".css")

BUNDLE_PATH = "/bundle.js"
LIVE_PATH = "/livereload"
CLIENT_PATH = "/canvas-sketch-client/live.js"
COMMIT_PATH = "/canvas-sketch-client/commit-hash"

CLIENT_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "client.js")
DEFAULT_INDEX = os.path.join(TEMPLATE_DIRECTORY, "index.html")
CLIENT_OPTIONS = {"path": LIVE_PATH, "debug": True}


def make_response(status_code, body=b"", content_type="text/plain; charset=utf-8", cache=False):
    """Build a complete HTTP response for websockets to send."""
    if isinstance(body, str):
        body = body.encode()
    headers = Headers()
    headers["Date"] = email.utils.formatdate(usegmt=True)
    headers["Connection"] = "close"
    headers["Content-Type"] = content_type
    headers["Content-Length"] = str(len(body))
    if not cache:
        headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return Response(status_code, http.HTTPStatus(status_code).phrase, headers, body)


def inject_client(html):
    """Add the live-reload <script> tag just before </body>."""
    tag = f'<script src="{CLIENT_PATH}"></script>\n'
    idx = html.lower().rfind("</body>")
    if idx == -1:
        return html + tag
    return html[:idx] + tag + html[idx:]


def error_script(message):
    """JavaScript that shows a bundling error in place of the sketch."""
    text = json.dumps(message)
    return (
        f"console.error({text});\n"
        "(function () {\n"
        "  var pre = document.createElement('pre');\n"
        "  pre.style.cssText = 'color:#e33;padding:20px;white-space:pre-wrap;font:12px monospace';\n"
        f"  pre.textContent = {text};\n"
        "  document.body.appendChild(pre);\n"
        "})();\n"
    )


def is_watched(path, root):
    """True for sketch-related files under `root`, outside node_modules
    and dot-directories."""
    rel = os.path.relpath(path, root)
    parts = rel.split(os.sep)
    if rel.startswith(".."):
        return False
    if any(p == "node_modules" or p.startswith(".") for p in parts[:-1]):
        return False
    return path.endswith(WATCH_EXTENSIONS)


class SketchChangeHandler(FileSystemEventHandler):
    """Forward changes to watched files from the observer thread to the loop."""

    def __init__(self, loop, queue, root):
        self.loop = loop
        self.queue = queue
        self.root = root

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in ("created", "modified", "deleted", "moved"):
            return
        for path in (event.src_path, getattr(event, "dest_path", "")):
            if path and is_watched(os.fsdecode(path), self.root):
                self.loop.call_soon_threadsafe(self.queue.put_nowait, os.fsdecode(path))


class DevServer:
    """One running dev server session: socket, clients and file watcher."""

    def __init__(
        self,
        entry,
        cwd=None,
        static_dir=None,
        host=HOST,
        port=PORT,
        open_browser=False,
        verbose=False,
        commit=commit_module.commit,
        bundler=None,
    ):
        self.cwd = os.path.abspath(cwd or os.getcwd())
        self.entry = os.path.abspath(os.path.join(self.cwd, entry))
        self.static_dir = os.path.realpath(os.path.join(self.cwd, static_dir or "."))
        self.host = host
        self.port = port
        self.open_browser = open_browser
        self.verbose = verbose
        self.commit = commit
        if bundler is None:
            bundler = patch_resolver(Bundler(self.entry, transforms=["glslify"], cwd=self.cwd))
        self.bundler = bundler
        self.clients = set()
        self._tasks = set()

    @property
    def url(self):
        return f"http://{self.host}:{self.port}/"

    def debug(self, message):
        if self.verbose:
            console.print(f"  [dim]{escape(message)}[/]")

    # ── HTTP ────────────────────────────────────────────────────────────────

    async def process_request(self, connection, request):
        """websockets hook: answer plain HTTP, let /livereload upgrade."""
        path = unquote(urlsplit(request.path).path)
        if path == LIVE_PATH and "websocket" in request.headers.get("Upgrade", "").lower():
            return None
        response = await self.handle_http(path)
        style = "dim" if response.status_code < 400 else "red"
        console.print(f"  [{style}]GET {escape(path)} {response.status_code}[/]")
        return response

    async def handle_http(self, path):
        return await self.middleware(path, self.route)

    async def middleware(self, path, next_handler):
        """Serve the commit hash; pass every other path on unchanged."""
        if path == COMMIT_PATH:
            return await self.commit_hash()
        return await next_handler(path)

    async def commit_hash(self):
        try:
            record = await self.commit(self.cwd)
        except Exception as e:
            error_console.print(f"  [red]Commit hash failed:[/] {escape(str(e))}")
            return make_response(500, str(e))
        return make_response(200, json.dumps(record), "application/json")

    async def route(self, path):
        if path == BUNDLE_PATH:
            return await self.serve_bundle()
        if path == CLIENT_PATH:
            return self.serve_client()
        if path in ("/", "/index.html"):
            return self.serve_index()
        return self.serve_static(path)

    async def serve_bundle(self):
        try:
            body = await self.bundler.bundle()
        except SketchError as e:
            error_console.print(f"\n  [red]{escape(str(e))}[/]")
            body = error_script(str(e))
        return make_response(200, body, "application/javascript; charset=utf-8")

    def serve_client(self):
        with open(CLIENT_SCRIPT, encoding="utf-8") as f:
            source = f.read()
        options = f"window.LIVERELOAD_OPTIONS = {json.dumps(CLIENT_OPTIONS)};\n"
        return make_response(200, options + source, "application/javascript; charset=utf-8")

    def serve_index(self):
        index = os.path.join(self.static_dir, "index.html")
        if not os.path.isfile(index):
            index = DEFAULT_INDEX
        with open(index, encoding="utf-8") as f:
            html = f.read()
        return make_response(200, inject_client(html), "text/html; charset=utf-8")

    def serve_static(self, path):
        full = os.path.realpath(os.path.join(self.static_dir, path.lstrip("/")))
        if full != self.static_dir and not full.startswith(self.static_dir + os.sep):
            return make_response(403, "Forbidden")
        if os.path.isdir(full):
            full = os.path.join(full, "index.html")
        if not os.path.isfile(full):
            return make_response(404, "Not Found")

        content_type = mimetypes.guess_type(full)[0] or "application/octet-stream"
        with open(full, "rb") as f:
            body = f.read()
        if content_type == "text/html":
            body = inject_client(body.decode("utf-8", errors="replace"))
            content_type = "text/html; charset=utf-8"
        return make_response(200, body, content_type)

    # ── Live reload ─────────────────────────────────────────────────────────

    async def handler(self, websocket):
        """Handle a single live-reload connection."""
        peer = getattr(websocket, "remote_address", None)
        self.debug(f"Client connected: {peer}")
        self.clients.add(websocket)
        try:
            async for message in websocket:
                self.handle_message(message)
        except websockets.ConnectionClosed:
            pass
        finally:
            self.clients.discard(websocket)
            self.debug(f"Client disconnected: {peer}")

    def handle_message(self, message):
        """Start a commit for {"event": "commit"}; ignore anything else.

        Returns the scheduled task, or None when the frame was ignored.
        """
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            self.debug(f"Ignoring malformed frame: {message!r}")
            return None
        if not isinstance(data, dict) or data.get("event") != "commit":
            self.debug(f"Ignoring frame: {message!r}")
            return None

        task = asyncio.ensure_future(self._commit_in_background())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _commit_in_background(self):
        try:
            record = await self.commit(self.cwd)
        except Exception as e:
            error_console.print(f"  [red]Commit failed:[/] {escape(str(e))}")
            return None
        status(f"Commit: [bold]{escape(record['hash'])}[/]")
        return record

    def reload(self):
        broadcast(self.clients, json.dumps({"event": "reload"}))

    # ── File watching ───────────────────────────────────────────────────────

    def watch_roots(self):
        roots = [os.path.dirname(self.entry), self.static_dir]
        return [r for i, r in enumerate(roots) if r not in roots[:i]]

    async def watch(self, interval=WATCH_INTERVAL):
        """Reload connected clients whenever a watched file changes.

        Events arrive from the watchdog observer thread; changes within
        `interval` of each other are coalesced into one reload.
        """
        loop = asyncio.get_running_loop()
        queue = asyncio.Queue()
        observer = Observer()
        for root in self.watch_roots():
            observer.schedule(SketchChangeHandler(loop, queue, root), root, recursive=True)
        observer.start()
        try:
            while True:
                changed = {await queue.get()}
                await asyncio.sleep(interval)
                while not queue.empty():
                    changed.add(queue.get_nowait())
                for path in sorted(changed):
                    self.debug(f"Changed: {os.path.relpath(path, self.cwd)}")
                status(f"Reloading ({len(changed)} file{'s' if len(changed) != 1 else ''} changed)")
                self.reload()
        finally:
            observer.stop()
            observer.join(timeout=1)

    # ── Lifecycle ───────────────────────────────────────────────────────────

    async def serve(self):
        """Start listening and run until the process is stopped."""
        async with serve(self.handler, self.host, self.port, process_request=self.process_request):
            status(f"Server running at [bold]{self.url}[/]")
            if self.open_browser:
                webbrowser.open(self.url)
            watcher = asyncio.ensure_future(self.watch())
            try:
                await asyncio.Future()  # run forever
            finally:
                watcher.cancel()
