"""
SVG Trace - Main Entry Point
"""
import argparse
import mimetypes
import sys
import socket
from pathlib import Path

import uvicorn


def run_server(host: str = None, port: int = None, workers: int = None, reload: bool = False):
    """Run the API server (defaults from SVGTRACE_API_* settings)"""
    from svgtrace.config import settings

    host = host or settings.api_host
    port = port or settings.api_port
    # uvicorn cannot combine reload with multiple workers
    workers = 1 if reload else (workers or settings.api_workers)

    # Get local IP address
    local_ip = "localhost"
    if host == "0.0.0.0":
        try:
            # Get actual local IP for display
            s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            s.connect(("8.8.8.8", 80))
            local_ip = s.getsockname()[0]
            s.close()
        except OSError:
            local_ip = "127.0.0.1"
    else:
        local_ip = host

    print("\n" + "="*70)
    print("  SVG Trace Server")
    print("="*70)
    print(f"  Host: {host}")
    print(f"  Port: {port}")
    print(f"  Local URL: http://{local_ip}:{port}")
    print(f"  API Docs: http://{local_ip}:{port}/docs")
    print(f"  Workers: {workers}")
    print(f"  Auto-reload: {'enabled' if reload else 'disabled'}")
    print("="*70 + "\n")

    uvicorn.run(
        "svgtrace.api.server:app",
        host=host,
        port=port,
        workers=workers,
        reload=reload,
    )


def run_cli(input_path: str, output_path: str, args: argparse.Namespace):
    """Convert a single image from the command line"""
    from svgtrace import BackgroundSpec, ConversionError, EdgeConfig, TraceParams, convert
    from svgtrace.config import configure_logging

    configure_logging()

    path = Path(input_path)
    if not path.exists():
        print(f"File not found: {path}")
        sys.exit(1)

    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

    try:
        params = TraceParams(
            threshold=args.threshold,
            turd_size=args.turd_size,
            opt_tolerance=args.opt_tolerance,
            turn_policy=args.turn_policy,
            line_color=args.line_color,
            invert=args.invert,
        )
        edge = EdgeConfig(blur_sigma=args.blur_sigma, edge_boost=args.edge_boost) if args.edge else None
    except ValueError as e:
        print(f"Invalid option: {e}")
        sys.exit(2)

    background = BackgroundSpec(transparent=args.background is None, color=args.background or "#ffffff")

    try:
        result = convert(path.read_bytes(), mime_type, params=params, edge=edge, background=background)
    except ConversionError as e:
        print(f"Failed: {e.message}")
        sys.exit(1)

    out = Path(output_path) if output_path else path.with_suffix(".svg")
    out.write_text(result.svg, encoding="utf-8")
    note = " (edge fallback: plain grayscale)" if result.fell_back else ""
    print(f"Success! {result.width}x{result.height} SVG written to {out}{note}")


def main():
    parser = argparse.ArgumentParser(
        description="SVG Trace - Convert PNG/JPEG images to SVG outlines"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Server command
    server_parser = subparsers.add_parser("server", help="Run API server")
    server_parser.add_argument("--host", help="Host to bind to (default: SVGTRACE_API_HOST)")
    server_parser.add_argument("--port", type=int, help="Port to listen on (default: SVGTRACE_API_PORT)")
    server_parser.add_argument("--workers", type=int, help="Worker processes (default: SVGTRACE_API_WORKERS)")
    server_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    # Convert command
    convert_parser = subparsers.add_parser("convert", help="Convert an image to SVG")
    convert_parser.add_argument("input", help="Input file (PNG, JPG)")
    convert_parser.add_argument("-o", "--output", help="Output SVG path (default: input with .svg)")
    convert_parser.add_argument("--threshold", type=int, default=224, help="Potrace threshold (0-255)")
    convert_parser.add_argument("--turd-size", type=int, default=2, help="Suppress speckles up to this size")
    convert_parser.add_argument("--opt-tolerance", type=float, default=0.28, help="Curve optimization tolerance")
    convert_parser.add_argument(
        "--turn-policy",
        default="minority",
        choices=["black", "white", "left", "right", "minority", "majority"],
        help="Potrace turn policy",
    )
    convert_parser.add_argument("--line-color", default="#000000", help="Path fill color")
    convert_parser.add_argument("--invert", action="store_true", help="Trace light lines on dark")
    convert_parser.add_argument("--background", help="Opaque background color (default: transparent)")
    convert_parser.add_argument("--edge", action="store_true", help="Run edge preprocessing (photos)")
    convert_parser.add_argument("--blur-sigma", type=float, default=0.8, help="Edge pre-blur sigma")
    convert_parser.add_argument("--edge-boost", type=float, default=1.0, help="Edge strength multiplier")

    args = parser.parse_args()

    if args.command == "server":
        run_server(host=args.host, port=args.port, workers=args.workers, reload=args.reload)
    elif args.command == "convert":
        run_cli(args.input, args.output, args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
