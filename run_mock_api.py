"""
Serve the donation platform mock API for local development.

    python run_mock_api.py [--host HOST] [--port PORT] [--reload]
"""
import argparse
import os

import uvicorn


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Donation platform mock API")
    parser.add_argument(
        "--host", default=os.environ.get("MOCK_API_HOST", "127.0.0.1")
    )
    parser.add_argument(
        "--port", type=int, default=int(os.environ.get("MOCK_API_PORT", "8000"))
    )
    parser.add_argument(
        "--reload", action="store_true",
        help="restart when source files change (development only)"
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    print(f"Mock API listening on http://{args.host}:{args.port}/api")
    print("Seeded logins: alice (verified), bob (unverified), admin; password 'secret'")

    uvicorn.run(
        "mock_api.server:app",
        host=args.host,
        port=args.port,
        reload=args.reload
    )


if __name__ == "__main__":
    main()
