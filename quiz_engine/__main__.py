"""CLI entry point for quiz-engine.

Usage:
  python -m quiz_engine serve [--host HOST] [--port PORT]
  python -m quiz_engine strategies
"""
from __future__ import annotations

import sys


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "strategies":
        _strategies()
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, strategies")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str) -> str:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _serve(args: list[str]):
    import uvicorn

    port = int(_parse_flag(args, "--port", "8765"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    print(f"Starting Quiz Engine on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    uvicorn.run(
        "quiz_engine.app:app",
        host=host,
        port=port,
        reload=False,
        timeout_graceful_shutdown=5,
    )


def _strategies():
    from quiz_engine.config import load_settings
    from quiz_engine.scoring import strategy_to_config

    settings = load_settings()
    for name, strategy in settings.scoring_strategies().items():
        marker = "*" if name == settings.default_strategy else " "
        params = strategy_to_config(strategy)["params"]
        details = ", ".join(f"{k}={v}" for k, v in params.items()) or "no parameters"
        print(f"{marker} {name:20s} {details}")


if __name__ == "__main__":
    main()
