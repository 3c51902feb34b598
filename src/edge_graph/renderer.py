"""
Graph renderer using Pillow.

Draws one frame of the live layout: links with arrowheads and rotated
relationship labels (bidirectional pairs as two offset parallel lines), node
discs with wrapped bold labels, the info box of the selected node, and an
optional logo.  Links and nodes are drawn in simulation space through the
engine's view transform; the info box and logo are screen-space overlays.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Callable, Optional, Union
from urllib.parse import urlparse

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .config import GraphConfig
from .engine import LayoutEngine
from .graph import Graph
from .interaction import SelectionState
from .models import GraphEdge, GraphNode, LogoConfig
from .viewport import ViewTransform, node_rect, place_info_box, to_screen, visible_rect

logger = logging.getLogger(__name__)

MIN_TEXT_PX = 4


# --- Font handling ---

@lru_cache(maxsize=64)
def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font, falling back to default if none available."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return ImageFont.load_default(size=size)


@lru_cache(maxsize=64)
def _load_bold_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold font, falling back to regular."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return _load_font(size)


# --- Color helpers ---

def _safe_color(color: str, fallback: str) -> str:
    """Return ``color`` if Pillow can parse it, else ``fallback``."""
    try:
        ImageColor.getrgb(color)
        return color
    except ValueError:
        return fallback


# --- Text helpers ---

def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """Greedy word wrap.

    Words are appended to the current line while the measured width stays
    under ``max_width``; otherwise a new line starts.  A single word wider
    than the limit gets a line of its own.  Wrapping a line that already
    fits returns it unchanged.
    """
    words = text.split()
    if not words:
        return [""]

    lines = []
    current = words[0]
    for word in words[1:]:
        candidate = f"{current} {word}"
        if measure(candidate) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


def label_angle(dx: float, dy: float) -> float:
    """Rotation for an edge label: follows the edge, never upside-down."""
    angle = math.atan2(dy, dx)
    if angle > math.pi / 2:
        angle -= math.pi
    elif angle < -math.pi / 2:
        angle += math.pi
    return angle


def _text_size(font, text: str) -> tuple[float, float, float, float]:
    return font.getbbox(text)


def _draw_centered_text(draw: ImageDraw.ImageDraw, center: tuple[float, float], text: str, font, fill: str):
    left, _, right, _ = _text_size(font, text)
    _, top, _, bottom = _text_size(font, "Ag")
    x = center[0] - (right - left) / 2 - left
    y = center[1] - (bottom - top) / 2 - top
    draw.text((x, y), text, fill=fill, font=font)


# --- Drawing primitives ---

def _draw_rounded_rect(
    draw: ImageDraw.ImageDraw,
    xy: tuple[float, float, float, float],
    radius: int,
    fill: Optional[str] = None,
    outline: Optional[str] = None,
    width: int = 1,
):
    """Draw a rounded rectangle."""
    x1, y1, x2, y2 = xy
    draw.rounded_rectangle(
        [x1, y1, x2, y2],
        radius=radius,
        fill=fill,
        outline=outline,
        width=width,
    )


def arrowhead(tip: tuple[float, float], angle: float, length: float, half_width: float, backwards: bool = False) -> list[tuple[float, float]]:
    """Triangle for an arrowhead at ``tip`` pointing along ``angle``.

    With ``backwards`` the head points against ``angle`` (used for the
    reverse edge of a bidirectional pair, whose tip is at the line start).
    """
    sign = 1 if backwards else -1
    return [
        tip,
        (tip[0] + sign * length * math.cos(angle - half_width),
         tip[1] + sign * length * math.sin(angle - half_width)),
        (tip[0] + sign * length * math.cos(angle + half_width),
         tip[1] + sign * length * math.sin(angle + half_width)),
    ]


# --- Logo ---

def load_logo(logo: LogoConfig) -> Optional[Image.Image]:
    """Load a logo from a local path or ``file://`` URL.

    Remote URLs are not fetched here (the web viewer downloads them and
    passes the image in); they are logged and skipped.
    """
    parsed = urlparse(logo.url)
    if parsed.scheme in ("http", "https"):
        logger.info(f"Remote logo {logo.url} must be fetched by the host; skipping")
        return None
    path = Path(parsed.path if parsed.scheme == "file" else logo.url)
    try:
        with Image.open(path) as img:
            return prepare_logo(img, logo)
    except OSError as e:
        logger.warning(f"Could not load logo {logo.url}: {e}")
        return None


def prepare_logo(img: Image.Image, logo: LogoConfig) -> Image.Image:
    """Convert to RGBA and shrink so the longest side fits ``max_size``."""
    img = img.convert("RGBA")
    img.thumbnail((logo.max_size, logo.max_size))
    return img


def logo_position(size: tuple[int, int], canvas: tuple[int, int], position: str, padding: int) -> tuple[int, int]:
    """Top-left corner of a logo placed in the named canvas corner."""
    w, h = size
    cw, ch = canvas
    x = cw - w - padding if "right" in position else padding
    y = ch - h - padding if "bottom" in position else padding
    return (int(x), int(y))


# --- Main renderer ---

class GraphRenderer:
    """Renders the live state of a LayoutEngine to an image."""

    # Info overlay constants (screen pixels)
    INFO_PADDING = 12
    INFO_HEADER_HEIGHT = 28
    INFO_LINE_HEIGHT = 20
    INFO_MIN_WIDTH = 160
    INFO_MAX_WIDTH = 320
    INFO_RADIUS = 8
    INFO_FONT_SIZE = 13

    def __init__(self, config: Optional[GraphConfig] = None, logo: Optional[Image.Image] = None):
        self.config = config or GraphConfig()
        self.logo = logo
        self.font_info = _load_font(self.INFO_FONT_SIZE)
        self.font_info_bold = _load_bold_font(self.INFO_FONT_SIZE)

    def render(self, source: Union[Graph, LayoutEngine], output_path: Optional[str] = None,
               selection: Optional[SelectionState] = None, max_ticks: Optional[int] = None) -> bytes:
        """Render to PNG bytes. Optionally save to file.

        A bare ``Graph`` is laid out first: levels, initial placement, then
        the simulation is run to rest (or for ``max_ticks``).
        """
        if isinstance(source, Graph):
            engine = LayoutEngine(source, self.config).initialize()
            engine.run(max_ticks)
            engine.fit_view()
        else:
            engine = source
        png_bytes = self.render_png(engine, selection)
        if output_path:
            Path(output_path).write_bytes(png_bytes)
        return png_bytes

    def render_png(self, engine: LayoutEngine, selection: Optional[SelectionState] = None) -> bytes:
        img = self.render_frame(engine, selection)
        buf = BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def render_frame(self, engine: LayoutEngine, selection: Optional[SelectionState] = None) -> Image.Image:
        """Draw one frame: background, edges, nodes, then screen-space overlays."""
        width = max(1, int(engine.width))
        height = max(1, int(engine.height))
        img = Image.new("RGB", (width, height), self.config.background_color)
        draw = ImageDraw.Draw(img)
        transform = engine.transform

        for edge in engine.graph.visible_edges():
            self._draw_edge(img, draw, engine, edge, transform)

        view = visible_rect(transform, width, height)
        radius = self.config.node_radius
        for node in engine.graph.visible_nodes():
            if not node.is_placed:
                continue
            if not node_rect(node, radius).intersects(view):
                continue
            self._draw_node(draw, node, transform)

        if selection is not None and selection.visible:
            self._draw_info_box(draw, engine, selection, transform, (width, height))

        if self.logo is not None:
            self._draw_logo(img, engine, (width, height))

        return img

    # --- Edges ---

    def _draw_edge(self, img: Image.Image, draw: ImageDraw.ImageDraw, engine: LayoutEngine,
                   edge: GraphEdge, transform: ViewTransform):
        source = edge.source
        target = edge.target
        if not source.is_placed or not target.is_placed:
            return

        dx = target.x - source.x
        dy = target.y - source.y
        length = math.hypot(dx, dy)
        if length == 0:
            return

        partner = engine.graph.pair_of(edge)
        if partner is not None and not engine.graph.is_forward(edge):
            return

        cfg = self.config
        ux = dx / length
        uy = dy / length
        r = cfg.node_radius
        ox = oy = 0.0
        if partner is not None:
            ox = -uy * cfg.bidirectional_offset
            oy = ux * cfg.bidirectional_offset

        angle = math.atan2(dy, dx)
        text_angle = label_angle(dx, dy)
        k = transform.k
        line_w = max(1, round(cfg.line_width * k))

        start = (source.x + ux * r + ox, source.y + uy * r + oy)
        end = (target.x - ux * r + ox, target.y - uy * r + oy)
        self._draw_segment(draw, transform, start, end, line_w)
        head = arrowhead(end, angle, cfg.arrow_length, cfg.arrow_width)
        draw.polygon([to_screen(transform, p) for p in head], fill=cfg.link_color)
        self._draw_edge_label(img, transform, start, end, text_angle, edge.relationship)

        if partner is not None:
            rstart = (source.x + ux * r - ox, source.y + uy * r - oy)
            rend = (target.x - ux * r - ox, target.y - uy * r - oy)
            self._draw_segment(draw, transform, rstart, rend, line_w)
            head = arrowhead(rstart, angle, cfg.arrow_length, cfg.arrow_width, backwards=True)
            draw.polygon([to_screen(transform, p) for p in head], fill=cfg.link_color)
            self._draw_edge_label(img, transform, rstart, rend, text_angle, partner.relationship)

    def _draw_segment(self, draw: ImageDraw.ImageDraw, transform: ViewTransform,
                      start: tuple[float, float], end: tuple[float, float], width: int):
        draw.line([to_screen(transform, start), to_screen(transform, end)],
                  fill=self.config.link_color, width=width)

    def _draw_edge_label(self, img: Image.Image, transform: ViewTransform,
                         start: tuple[float, float], end: tuple[float, float],
                         angle: float, text: str):
        if not text:
            return
        cfg = self.config
        size = round(cfg.font_size * transform.k)
        if size < MIN_TEXT_PX:
            return
        font = _load_font(size)

        left, top, right, bottom = _text_size(font, text)
        tw = max(1, math.ceil(right - left))
        th = max(1, math.ceil(bottom - top))
        label = Image.new("RGBA", (tw + 4, th + 4), (0, 0, 0, 0))
        ImageDraw.Draw(label).text((2 - left, 2 - top), text, fill=cfg.text_color, font=font)
        rotated = label.rotate(-math.degrees(angle), resample=Image.Resampling.BICUBIC, expand=True)

        mx, my = to_screen(transform, ((start[0] + end[0]) / 2, (start[1] + end[1]) / 2))
        lift = cfg.text_offset * transform.k + (th + 4) / 2
        cx = mx + lift * math.sin(angle)
        cy = my - lift * math.cos(angle)
        img.paste(rotated, (round(cx - rotated.width / 2), round(cy - rotated.height / 2)), rotated)

    # --- Nodes ---

    def _draw_node(self, draw: ImageDraw.ImageDraw, node: GraphNode, transform: ViewTransform):
        cfg = self.config
        k = transform.k
        sx, sy = to_screen(transform, (node.x, node.y))
        rs = cfg.node_radius * k
        fill = _safe_color(node.color, cfg.fallback_color)
        draw.ellipse([sx - rs, sy - rs, sx + rs, sy + rs], fill=fill)

        size = round(cfg.font_size * k)
        if size < MIN_TEXT_PX:
            return
        measure_font = _load_bold_font(cfg.font_size)
        lines = wrap_text(node.label, cfg.node_radius * cfg.label_width_factor, measure_font.getlength)
        font = _load_bold_font(size)
        line_h = cfg.line_height * k
        total = len(lines) * line_h
        for i, line in enumerate(lines):
            y = sy - total / 2 + i * line_h + line_h / 2
            _draw_centered_text(draw, (sx, y), line, font, cfg.text_color)

    # --- Overlays ---

    def info_lines(self, node: GraphNode) -> list[str]:
        """Text rows of the info box: id, label, then non-type properties."""
        lines = [f"ID: {node.id}", f"Label: {node.label}"]
        for key, value in node.properties.items():
            if key == "type":
                continue
            lines.append(f"{key}: {value}")
        return lines

    def measure_info_box(self, node: GraphNode) -> tuple[list[str], float, float]:
        """Wrapped rows plus the box width and height in screen pixels."""
        pad = self.INFO_PADDING
        text_width = self.INFO_MAX_WIDTH - 2 * pad
        rows: list[str] = []
        for line in self.info_lines(node):
            rows.extend(wrap_text(line, text_width, self.font_info.getlength))

        widest = max((self.font_info.getlength(r) for r in rows), default=0)
        header = node.type or "untyped"
        widest = max(widest, self.font_info_bold.getlength(header))
        width = min(self.INFO_MAX_WIDTH, max(self.INFO_MIN_WIDTH, widest + 2 * pad))
        height = self.INFO_HEADER_HEIGHT + pad + len(rows) * self.INFO_LINE_HEIGHT + pad
        return rows, width, height

    def _draw_info_box(self, draw: ImageDraw.ImageDraw, engine: LayoutEngine,
                       selection: SelectionState, transform: ViewTransform,
                       canvas: tuple[int, int]):
        node = engine.graph.get_node(selection.node_id)
        if node is None or node.hidden or not node.is_placed:
            selection.visible = False
            selection.rect = None
            return

        cfg = self.config
        rows, width, height = self.measure_info_box(node)
        anchor = to_screen(transform, (node.x, node.y))
        rect = place_info_box(anchor, (width, height), canvas, cfg.node_radius * transform.k)
        selection.rect = rect

        _draw_rounded_rect(
            draw, (rect.x1, rect.y1, rect.x2, rect.y2),
            radius=self.INFO_RADIUS,
            fill=cfg.info_fill,
            outline=cfg.info_border,
        )
        header_color = _safe_color(node.color, cfg.fallback_color)
        _draw_rounded_rect(
            draw, (rect.x1, rect.y1, rect.x2, rect.y1 + self.INFO_HEADER_HEIGHT),
            radius=self.INFO_RADIUS,
            fill=header_color,
        )
        draw.text(
            (rect.x1 + self.INFO_PADDING, rect.y1 + 7),
            node.type or "untyped",
            fill=cfg.text_color,
            font=self.font_info_bold,
        )
        y = rect.y1 + self.INFO_HEADER_HEIGHT + self.INFO_PADDING
        for row in rows:
            draw.text((rect.x1 + self.INFO_PADDING, y), row, fill=cfg.info_text, font=self.font_info)
            y += self.INFO_LINE_HEIGHT

    def _draw_logo(self, img: Image.Image, engine: LayoutEngine, canvas: tuple[int, int]):
        configuration = engine.graph.configuration
        logo_cfg = configuration.logo if configuration else None
        position = logo_cfg.position if logo_cfg else "top-right"
        padding = logo_cfg.padding if logo_cfg else 10
        xy = logo_position(self.logo.size, canvas, position, padding)
        img.paste(self.logo, xy, self.logo)
