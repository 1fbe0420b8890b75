"""
Run FastAPI Server
==================

Script to start the prediction API server.

Usage:
    python scripts/run_api.py
    python scripts/run_api.py --port 3000 --reload
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn

from config import get_config


def parse_args(api_config: dict):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Run the RunInsight prediction API")

    parser.add_argument(
        "--host",
        type=str,
        default=api_config.get("host", "0.0.0.0"),
        help="Host to bind to"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=api_config.get("port", 3000),
        help="Port to bind to"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=api_config.get("reload", False),
        help="Enable auto-reload"
    )

    return parser.parse_args()


def main():
    """Run the API server."""
    config = get_config()
    args = parse_args(config.get("api", {}))

    print(f"""
    RunInsight Prediction API
    -------------------------
      Host:     {args.host}
      Port:     {args.port}
      Reload:   {args.reload}
      Gateway:  {config.get("gateway", {}).get("base_url")}
      Model:    {config.get("prediction", {}).get("api_url")}
      API Docs: http://localhost:{args.port}/docs
    """)

    # Single worker: the result cache and the pass flag live in process memory
    uvicorn.run(
        "runinsight.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1
    )


if __name__ == "__main__":
    main()
