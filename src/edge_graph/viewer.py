#!/usr/bin/env python3
"""
Edge Graph Viewer - Web interface for exploring a graph interactively

A lightweight aiohttp server that keeps one live layout in memory.  The page
shows the latest rendered frame and forwards pointer, wheel and resize events
back to the server, where the interaction controller turns them into drags,
pans, zooms and selections.  While the simulation is hot a background task
steps it and marks the frame dirty.

Usage:
    edge-graph-viewer graph.json [--port 8766] [--host 0.0.0.0] [--preset compact]
"""

import asyncio
import argparse
import logging
from io import BytesIO
from typing import Optional
from urllib.parse import urlparse

import aiohttp
from aiohttp import web
from PIL import Image

from .config import GraphConfig, get_preset, load_config
from .engine import LayoutEngine
from .interaction import InteractionController
from .models import LogoConfig, NodeId
from .parser import parse_file
from .renderer import GraphRenderer, load_logo, prepare_logo

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 1 / 30


# --- Session ---

class ViewerSession:
    """One engine, its interaction controller and a cached rendered frame."""

    def __init__(self, engine: LayoutEngine, renderer: Optional[GraphRenderer] = None,
                 frame_interval: float = FRAME_INTERVAL):
        self.engine = engine
        self.renderer = renderer or GraphRenderer(engine.config)
        self.frame_interval = frame_interval
        self.controller = InteractionController(engine, on_redraw=self.mark_dirty)
        self.dirty = True
        self._frame: Optional[bytes] = None
        self._task: Optional[asyncio.Task] = None
        self._refit_handle: Optional[asyncio.TimerHandle] = None
        engine.simulation.on_tick(lambda sim: self.mark_dirty())

    def mark_dirty(self):
        self.dirty = True

    def frame(self) -> bytes:
        """PNG of the current state, re-rendered only when something changed."""
        if self.dirty or self._frame is None:
            self._frame = self.renderer.render_png(self.engine, self.controller.selection)
            self.dirty = False
        return self._frame

    def refit(self):
        self.engine.fit_view()
        self.mark_dirty()

    async def run_simulation(self):
        """Step the simulation while it is hot; idle otherwise."""
        while True:
            if self.engine.is_running:
                try:
                    self.engine.step()
                except Exception:
                    logger.exception("Simulation step failed; stopping the simulation")
                    self.engine.simulation.stop()
            await asyncio.sleep(self.frame_interval)

    def start(self):
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self.run_simulation())
        # One delayed refit in case the first fit ran before the page size was known.
        self._refit_handle = loop.call_later(self.engine.config.refit_delay, self.refit)

    async def stop(self):
        if self._refit_handle is not None:
            self._refit_handle.cancel()
            self._refit_handle = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def status(self) -> dict:
        selection = self.controller.selection
        return {
            **self.engine.stats(),
            "cursor": self.controller.cursor,
            "drag_state": self.controller.state.value,
            "selected": selection.node_id if selection.visible else None,
        }


SESSION_KEY = web.AppKey("session", ViewerSession)


# --- Helpers ---

async def fetch_logo(logo: LogoConfig) -> Optional[Image.Image]:
    """Load a logo, downloading http(s) URLs."""
    if urlparse(logo.url).scheme not in ("http", "https"):
        return load_logo(logo)
    try:
        async with aiohttp.ClientSession() as client:
            async with client.get(logo.url, timeout=aiohttp.ClientTimeout(total=10)) as resp:
                resp.raise_for_status()
                data = await resp.read()
        with Image.open(BytesIO(data)) as img:
            return prepare_logo(img, logo)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        logger.warning(f"Could not fetch logo {logo.url}: {e}")
        return None


def _node_id(value) -> NodeId:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"Invalid node id: {value!r}")
    return value


async def _read_json(request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(
            text='{"error": "Request body must be JSON"}', content_type="application/json",
        )
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(
            text='{"error": "Request body must be a JSON object"}', content_type="application/json",
        )
    return data


# --- Handlers ---

async def handle_index(request):
    """Serve the viewer page."""
    return web.Response(text=INDEX_HTML, content_type="text/html")


async def handle_frame(request):
    """Current frame as PNG."""
    session = request.app[SESSION_KEY]
    return web.Response(body=session.frame(), content_type="image/png",
                        headers={"Cache-Control": "no-store"})


async def handle_status(request):
    """Layout and interaction status."""
    return web.json_response(request.app[SESSION_KEY].status())


async def handle_pointer(request):
    """Pointer down/move/up in screen coordinates."""
    session = request.app[SESSION_KEY]
    data = await _read_json(request)
    try:
        kind = data["type"]
        x = float(data["x"])
        y = float(data["y"])
        button = int(data.get("button", 0))
        ctrl = bool(data.get("ctrl", False))
    except (KeyError, TypeError, ValueError) as e:
        return web.json_response({"error": f"Invalid pointer event: {e}"}, status=400)

    controller = session.controller
    result = None
    if kind == "down":
        node_id = controller.pointer_down(x, y, button=button, ctrl=ctrl)
        result = "drag-start" if node_id is not None else None
    elif kind == "move":
        controller.pointer_move(x, y)
    elif kind == "up":
        result = controller.pointer_up(x, y)
    else:
        return web.json_response({"error": f"Unknown pointer event type: {kind}"}, status=400)

    return web.json_response({
        "result": result,
        "cursor": controller.cursor,
        "selected": controller.selection.node_id if controller.selection.visible else None,
    })


async def handle_wheel(request):
    """Zoom around the pointer."""
    session = request.app[SESSION_KEY]
    data = await _read_json(request)
    try:
        x = float(data["x"])
        y = float(data["y"])
        delta_y = float(data["delta_y"])
        delta_mode = int(data.get("delta_mode", 0))
    except (KeyError, TypeError, ValueError) as e:
        return web.json_response({"error": f"Invalid wheel event: {e}"}, status=400)

    zoomed = session.controller.wheel(x, y, delta_y, delta_mode)
    t = session.engine.transform
    return web.json_response({"zoomed": zoomed, "transform": {"x": t.x, "y": t.y, "k": t.k}})


async def handle_resize(request):
    """Track the page's canvas size and refit."""
    session = request.app[SESSION_KEY]
    data = await _read_json(request)
    try:
        width = float(data["width"])
        height = float(data["height"])
    except (KeyError, TypeError, ValueError) as e:
        return web.json_response({"error": f"Invalid size: {e}"}, status=400)
    if width <= 0 or height <= 0:
        return web.json_response({"error": "Width and height must be positive"}, status=400)

    t = session.engine.resize(width, height)
    session.mark_dirty()
    return web.json_response({"width": width, "height": height, "transform": {"x": t.x, "y": t.y, "k": t.k}})


async def handle_fit(request):
    """Re-fit the view to the whole graph."""
    session = request.app[SESSION_KEY]
    session.refit()
    t = session.engine.transform
    return web.json_response({"transform": {"x": t.x, "y": t.y, "k": t.k}})


async def _toggle_cluster(request, collapse: bool):
    session = request.app[SESSION_KEY]
    data = await _read_json(request)
    try:
        node_id = _node_id(data.get("id"))
    except ValueError as e:
        return web.json_response({"error": str(e)}, status=400)
    if session.engine.graph.get_node(node_id) is None:
        return web.json_response({"error": f"Unknown node id: {node_id!r}"}, status=404)

    if collapse:
        changed = session.engine.collapse(node_id)
    else:
        changed = session.engine.expand(node_id)
    session.mark_dirty()
    key = "hidden" if collapse else "revealed"
    return web.json_response({"id": node_id, key: changed})


async def handle_collapse(request):
    """Hide a node's descendants."""
    return await _toggle_cluster(request, collapse=True)


async def handle_expand(request):
    """Reveal a collapsed node's descendants."""
    return await _toggle_cluster(request, collapse=False)


# --- App ---

async def _on_startup(app):
    app[SESSION_KEY].start()


async def _on_cleanup(app):
    await app[SESSION_KEY].stop()


def create_app(session: ViewerSession):
    """Create the aiohttp application."""
    app = web.Application()
    app[SESSION_KEY] = session

    app.router.add_get('/', handle_index)
    app.router.add_get('/api/frame.png', handle_frame)
    app.router.add_get('/api/status', handle_status)
    app.router.add_post('/api/pointer', handle_pointer)
    app.router.add_post('/api/wheel', handle_wheel)
    app.router.add_post('/api/resize', handle_resize)
    app.router.add_post('/api/fit', handle_fit)
    app.router.add_post('/api/collapse', handle_collapse)
    app.router.add_post('/api/expand', handle_expand)

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


async def build_session(graph_path: str, config: GraphConfig, width: float = 1200,
                        height: float = 800, seed: Optional[int] = None) -> ViewerSession:
    """Load a graph file and prepare a live session for it."""
    graph = parse_file(graph_path, fallback_color=config.fallback_color)
    engine = LayoutEngine(graph, config, width=width, height=height, seed=seed).initialize()

    logo = None
    if graph.configuration and graph.configuration.logo:
        logo = await fetch_logo(graph.configuration.logo)
    return ViewerSession(engine, GraphRenderer(config, logo=logo))


async def serve(args):
    """Run the web server."""
    config = load_config(args.config) if args.config else get_preset(args.preset)
    session = await build_session(args.graph, config, seed=args.seed)
    app = create_app(session)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, args.host, args.port)
    await site.start()

    logger.info(f"Edge Graph viewer running at http://{args.host}:{args.port}")
    logger.info(f"Graph: {args.graph} ({len(session.engine.graph.nodes)} nodes)")

    # Keep running
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description='Edge Graph Web Viewer')
    parser.add_argument('graph', help='Graph document (JSON or YAML)')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8766, help='Port to listen on')
    parser.add_argument('--preset', default='default', help='Configuration preset')
    parser.add_argument('--config', default=None, help='YAML config file (overrides --preset)')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for the layout')
    args = parser.parse_args()

    try:
        asyncio.run(serve(args))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Edge Graph</title>
<style>
  html, body { margin: 0; height: 100%; background: #1a1a1a; overflow: hidden; }
  #frame { display: block; width: 100%; height: 100%; user-select: none; -webkit-user-drag: none; }
</style>
</head>
<body>
<img id="frame" alt="graph" draggable="false">
<script>
const frame = document.getElementById('frame');
let cursor = 'default';

function post(path, body) {
  return fetch(path, {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify(body),
  }).then(r => r.json());
}

function point(ev) {
  const r = frame.getBoundingClientRect();
  return {x: ev.clientX - r.left, y: ev.clientY - r.top};
}

function pointer(type, ev) {
  const p = point(ev);
  return post('/api/pointer', {type, x: p.x, y: p.y, button: ev.button, ctrl: ev.ctrlKey})
    .then(res => { frame.style.cursor = res.cursor || 'default'; });
}

frame.addEventListener('mousedown', ev => { ev.preventDefault(); pointer('down', ev); });
window.addEventListener('mousemove', ev => pointer('move', ev));
window.addEventListener('mouseup', ev => pointer('up', ev));
frame.addEventListener('wheel', ev => {
  ev.preventDefault();
  const p = point(ev);
  post('/api/wheel', {x: p.x, y: p.y, delta_y: ev.deltaY, delta_mode: ev.deltaMode});
}, {passive: false});
frame.addEventListener('dblclick', ev => { ev.preventDefault(); post('/api/fit', {}); });

function resize() {
  post('/api/resize', {width: window.innerWidth, height: window.innerHeight});
}
window.addEventListener('resize', resize);
resize();

function refresh() {
  const img = new Image();
  img.onload = () => { frame.src = img.src; setTimeout(refresh, 33); };
  img.onerror = () => setTimeout(refresh, 500);
  img.src = '/api/frame.png?t=' + Date.now();
}
refresh();
</script>
</body>
</html>
"""


if __name__ == '__main__':
    main()
