"""Face search HTTP API server."""

import argparse


def main() -> None:
    """CLI entry point for the HTTP API."""
    import uvicorn

    from event_face_search.config import API_HOST, API_PORT, setup_logging
    from event_face_search.search.app import create_app

    parser = argparse.ArgumentParser(description="Event face search API server")
    parser.add_argument("--host", default=API_HOST, help=f"Bind address (default: {API_HOST})")
    parser.add_argument("--port", type=int, default=API_PORT, help=f"Port (default: {API_PORT})")
    parser.add_argument("--db", help="DuckDB file (default: EFS_DB_PATH or project root)")
    args = parser.parse_args()

    setup_logging()
    app = create_app(db_path=args.db)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
