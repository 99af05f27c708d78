#!/usr/bin/env python3
"""Canvas tool CLI - layout, export and validate snapshot files, or serve the API."""

import argparse
import json
import logging
import sys
from pathlib import Path

from canvas_core.errors import CanvasError
from canvas_core.layout import LayoutStrategy, apply_layout
from canvas_core.validation import validate_canvas, validation_summary

from .config import Settings, configure_logging
from .export import ExportFormat, export_file, from_snapshot, to_snapshot

logger = logging.getLogger(__name__)


def _json_out(data, code=0):
    print(json.dumps(data))
    sys.exit(code)


def _read_canvas(path):
    try:
        return from_snapshot(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        _json_out({"success": False, "error": f"Cannot read {path}: {e.strerror}"}, 1)
    except ValueError as e:
        _json_out({"success": False, "error": f"Invalid snapshot {path}: {e}"}, 1)


# ── Commands ─────────────────────────────────────────────────────────────────

def cmd_layout(args):
    canvas = _read_canvas(args.file)
    try:
        nodes = apply_layout(args.strategy, canvas.nodes, canvas.edges, seed=args.seed)
    except CanvasError as e:
        _json_out({"success": False, "error": str(e)}, 1)

    canvas = canvas.model_copy(update={"nodes": tuple(nodes)})
    out = Path(args.output or args.file)
    out.write_text(to_snapshot(canvas), encoding="utf-8")
    logger.info("Wrote %s layout of %d nodes to %s", args.strategy, len(nodes), out)
    _json_out({"success": True, "strategy": args.strategy, "nodes": len(nodes), "file": str(out)})


def cmd_export(args):
    canvas = _read_canvas(args.file)
    exported = export_file(canvas, args.format)
    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out = out_dir / exported.filename
    out.write_bytes(exported.content)
    _json_out({
        "success": True,
        "file": str(out),
        "content_type": exported.content_type,
        "bytes": len(exported.content)
    })


def cmd_validate(args):
    canvas = _read_canvas(args.file)
    issues = validate_canvas(canvas)
    summary = validation_summary(issues)

    _json_out({
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": summary
    }, 0 if summary["valid"] else 2)


def cmd_serve(args):
    import uvicorn
    from .main import create_app

    settings = Settings.from_env()
    update = {k: v for k, v in {"host": args.host, "port": args.port}.items() if v is not None}
    settings = settings.model_copy(update=update)
    configure_logging(settings)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Canvas tool CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("layout")
    p.add_argument("file")
    p.add_argument("--strategy", default="grid", choices=[s.value for s in LayoutStrategy])
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--output", default=None)

    p = sub.add_parser("export")
    p.add_argument("file")
    p.add_argument("--format", default="svg", choices=[f.value for f in ExportFormat])
    p.add_argument("--out-dir", default=".")

    p = sub.add_parser("validate")
    p.add_argument("file")

    p = sub.add_parser("serve")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)

    args = parser.parse_args(argv)

    if args.command != "serve":
        configure_logging(Settings.from_env().model_copy(update={"log_level": "WARNING"}))

    cmd_map = {
        "layout": cmd_layout,
        "export": cmd_export,
        "validate": cmd_validate,
        "serve": cmd_serve,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
