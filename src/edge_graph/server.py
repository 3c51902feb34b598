"""Edge Graph MCP server: tools for laying out and rendering node-link graphs."""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import PRESETS, config_from_dict, config_to_yaml, get_preset
from .engine import LayoutEngine
from .parser import parse_graph
from .renderer import GraphRenderer, load_logo

logger = logging.getLogger(__name__)


# --- Constants ---
OUTPUT_DIR = Path(os.environ.get("EDGE_GRAPH_OUTPUT_DIR", Path.home() / ".edge_graph" / "renders"))
DEFAULT_MAX_TICKS = 600

server = Server("edge-graph-mcp")


def _ensure_output_dir():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="render_graph",
            description=(
                "Lay out a node-link graph with the force simulation and render it to PNG. "
                "Levels are derived from the edges, nodes are seeded in level rows and "
                "type columns, then the simulation runs until it settles. "
                "Returns the path to the rendered PNG file."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "graph": {
                        "type": "string",
                        "description": (
                            "JSON or YAML graph document. Example:\n"
                            "nodes:\n"
                            "  - {id: 1, label: A, properties: {type: Person}}\n"
                            "  - {id: 2, label: B, properties: {type: Company}}\n"
                            "edges:\n"
                            "  - {source_node_id: 1, target_node_id: 2, relationship_name: WORKS_AT}\n"
                            "colors: {Person: '#ff0000', Company: '#00ff00'}\n"
                            "\n"
                            "Nodes without a mapped type color use the fallback color."
                        ),
                    },
                    "preset": {
                        "type": "string",
                        "enum": list(PRESETS.keys()),
                        "description": "Configuration preset (default: 'default').",
                        "default": "default",
                    },
                    "overrides": {
                        "type": "object",
                        "description": "Config field overrides applied on top of the preset, e.g. {\"node_radius\": 50}.",
                    },
                    "width": {
                        "type": "integer",
                        "description": "Image width in pixels (default 1200).",
                        "default": 1200,
                    },
                    "height": {
                        "type": "integer",
                        "description": "Image height in pixels (default 800).",
                        "default": 800,
                    },
                    "max_ticks": {
                        "type": "integer",
                        "description": f"Upper bound on simulation ticks before rendering (default {DEFAULT_MAX_TICKS}).",
                        "default": DEFAULT_MAX_TICKS,
                    },
                    "seed": {
                        "type": "integer",
                        "description": "Random seed for a reproducible layout.",
                    },
                    "filename": {
                        "type": "string",
                        "description": "Output filename (without extension). Default: auto-generated UUID.",
                    },
                },
                "required": ["graph"],
            },
        ),
        Tool(
            name="list_presets",
            description="List the available configuration presets.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_preset",
            description="Get the full configuration of a preset as YAML.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Preset name"},
                },
                "required": ["name"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    if name == "render_graph":
        return await _render_graph(arguments)
    elif name == "list_presets":
        return await _list_presets(arguments)
    elif name == "get_preset":
        return await _get_preset(arguments)
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


async def _render_graph(args: dict) -> list[TextContent]:
    """Lay out a graph document and render it to PNG."""
    _ensure_output_dir()

    filename = args.get("filename") or str(uuid.uuid4())[:8]
    width = int(args.get("width", 1200))
    height = int(args.get("height", 800))
    max_ticks = int(args.get("max_ticks", DEFAULT_MAX_TICKS))

    try:
        config = config_from_dict({"preset": args.get("preset", "default"), **(args.get("overrides") or {})})
    except ValueError as e:
        return [TextContent(type="text", text=f"Invalid configuration: {e}")]

    try:
        graph = parse_graph(args["graph"], fallback_color=config.fallback_color)
    except Exception as e:
        return [TextContent(type="text", text=f"Failed to parse graph document: {e}")]

    if not graph.nodes:
        return [TextContent(type="text", text="Graph document has no usable nodes")]

    output_path = str(OUTPUT_DIR / f"{filename}.png")

    try:
        engine = LayoutEngine(graph, config, width=width, height=height, seed=args.get("seed"))
        engine.initialize()
        ticks = engine.run(max_ticks)
        engine.fit_view()

        logo = None
        if graph.configuration and graph.configuration.logo:
            logo = load_logo(graph.configuration.logo)
        GraphRenderer(config, logo=logo).render(engine, output_path=output_path)
    except Exception as e:
        logger.exception("Rendering failed")
        return [TextContent(type="text", text=f"Rendering failed: {e}")]

    return [TextContent(
        type="text",
        text=json.dumps({
            "status": "success",
            "path": output_path,
            "nodes": len(graph.nodes),
            "edges": len(graph.edges),
            "bidirectional_pairs": len(graph.bidirectional_pairs()),
            "levels": engine.max_level + 1,
            "ticks": ticks,
            "settled": not engine.is_running,
        }),
    )]


async def _list_presets(args: dict) -> list[TextContent]:
    """List configuration presets."""
    presets = [
        {
            "name": name,
            "node_radius": cfg.node_radius,
            "link_distance": cfg.link_distance,
            "charge_strength": cfg.charge_strength,
            "release_on_drag_end": cfg.release_on_drag_end,
        }
        for name, cfg in PRESETS.items()
    ]
    return [TextContent(type="text", text=json.dumps({"presets": presets}))]


async def _get_preset(args: dict) -> list[TextContent]:
    """Get preset content by name."""
    name = args["name"]
    try:
        config = get_preset(name)
    except ValueError as e:
        return [TextContent(type="text", text=str(e))]
    return [TextContent(type="text", text=config_to_yaml(config))]


def main():
    """Entry point for the MCP server."""
    import asyncio
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
