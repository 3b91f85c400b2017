"""
API start script: runs the FastAPI app via uvicorn.

Usage:
    uv run python main.py
    uv run python main.py --host 0.0.0.0 --port 8080 --reload
    uv run python main.py --create-key "ci pipeline"
    uv run python main.py --list-keys
    uv run python main.py --revoke-key 3
"""

from __future__ import annotations

import argparse
import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="Start the redact-pro API")
    parser.add_argument(
        "--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Bind port (default: 8000)"
    )
    parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload on code changes"
    )
    keys = parser.add_mutually_exclusive_group()
    keys.add_argument(
        "--create-key",
        metavar="NAME",
        help="Create an API key with this name, print it once and exit",
    )
    keys.add_argument(
        "--list-keys", action="store_true", help="List stored API keys and exit"
    )
    keys.add_argument(
        "--revoke-key", type=int, metavar="ID", help="Deactivate an API key and exit"
    )
    args = parser.parse_args()

    if args.create_key or args.list_keys or args.revoke_key is not None:
        from api.db import create_api_key, init_db, list_api_keys, revoke_api_key

        init_db()
        if args.create_key:
            print(create_api_key(args.create_key))
        elif args.list_keys:
            for key in list_api_keys():
                state = "active" if key.is_active else "revoked"
                print(f"{key.id}\t{key.key_prefix}…\t{key.name}\t{state}\t{key.last_used_at or '-'}")
        elif not revoke_api_key(args.revoke_key):
            parser.exit(1, f"No active API key with id {args.revoke_key}\n")
        return

    # review sessions live in process memory, so one worker only
    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
