"""
=============================================================================
WEBAPP CLI ENTRY POINT
=============================================================================

Runs a demo application built with classic():

    python -m webapp                          # 127.0.0.1:8080
    python -m webapp --port 3000
    python -m webapp --host 0.0.0.0           # all interfaces (containers)
    python -m webapp --static ./public        # also serve a directory
    python -m webapp --views ./templates      # template directory

Routes of the demo:

    GET /                  landing page (template "index" if present)
    GET /api/hello/:name   JSON greeting, from the /api sub-application
    GET /api/time          JSON server time

Unset options fall back to WEBAPP_* environment variables
(see AppConfig.from_env).

=============================================================================
"""

import argparse
import os
import time
from dataclasses import replace
from typing import Optional

from . import __version__
from .app import Webapp, classic
from .config import AppConfig
from .middleware import Static


INDEX_PAGE = """<!DOCTYPE html>
<html>
<head><title>webapp</title></head>
<body>
    <h1>webapp %s</h1>
    <p>Try <a href="/api/hello/world">/api/hello/world</a>
       or <a href="/api/time">/api/time</a>.</p>
</body>
</html>
"""


def build_app(config: AppConfig, static_dir: Optional[str] = None) -> Webapp:
    """The demo application: index page, /api sub-app, optional static files."""
    app = classic(config)

    if static_dir:
        app.use(Static(static_dir))

    @app.get("/")
    def index(ctx):
        view_file = os.path.join(config.views_dir, "index" + config.view_extension)
        if os.path.isfile(view_file):
            ctx.view("index", {"version": __version__})
        else:
            ctx.response_writer.headers["Content-Type"] = "text/html; charset=utf-8"
            ctx.view_string(INDEX_PAGE, __version__)

    api = app.sub_route("/api")

    def api_headers(ctx, next):
        ctx.response_writer.headers["Cache-Control"] = "no-store"
        next(ctx)

    api.use_func(api_headers)

    @api.get("/hello/:name")
    def hello(ctx):
        ctx.json({"message": f"Hello, {ctx.path_params['name']}!"})

    @api.get("/time")
    def server_time(ctx):
        ctx.json({"time": time.time()})

    return app


def main():
    parser = argparse.ArgumentParser(
        description="Run the webapp demo application",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m webapp                          # Run with defaults
  python -m webapp --port 3000              # Custom port
  python -m webapp --host 0.0.0.0           # Listen on all interfaces
  python -m webapp --static ./public        # Serve static files
        """
    )

    parser.add_argument("--host", "-H", default=None,
                        help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=None,
                        help="Port to listen on (default: 8080)")
    parser.add_argument("--workers", "-w", type=int, default=None,
                        help="Worker threads at startup (max is 2x this)")
    parser.add_argument("--views", default=None,
                        help="Template directory (default: ./views)")
    parser.add_argument("--static", "-s", default=None,
                        help="Directory to serve static files from")
    parser.add_argument("--log-level", "-l", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: INFO)")
    parser.add_argument("--version", "-v", action="version",
                        version=f"webapp {__version__}")

    args = parser.parse_args()

    config = AppConfig.from_env()
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.workers is not None:
        overrides["min_workers"] = args.workers
        overrides["max_workers"] = args.workers * 2
    if args.views is not None:
        overrides["views_dir"] = args.views
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    config = replace(config, **overrides)

    static_dir = args.static if args.static and os.path.isdir(args.static) else None
    if args.static and not static_dir:
        parser.error(f"--static: not a directory: {args.static}")

    app = build_app(config, static_dir)
    app.run(f"{config.host}:{config.port}")


if __name__ == "__main__":
    main()
