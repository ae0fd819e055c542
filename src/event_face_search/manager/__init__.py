"""Event management CLI: events, photos and the DuckDB schema."""

import argparse


def main() -> None:
    """CLI entry point for event and photo management."""
    parser = argparse.ArgumentParser(description="Event face search manager")
    parser.add_argument("--db", help="DuckDB file (default: EFS_DB_PATH or project root)")
    subparsers = parser.add_subparsers(dest="command")

    # init-db
    subparsers.add_parser("init-db", help="Initialize the database schema")

    # create-event
    ce_parser = subparsers.add_parser("create-event", help="Create an event")
    ce_parser.add_argument("--name", required=True, help="Event display name")
    ce_parser.add_argument("--banner", help="Banner image URL")

    # list-events
    subparsers.add_parser("list-events", help="List events, newest first")

    # delete-event
    de_parser = subparsers.add_parser(
        "delete-event", help="Delete an event with all its photos and embeddings"
    )
    de_parser.add_argument("event_id", help="Event ID")

    # list-photos
    lp_parser = subparsers.add_parser("list-photos", help="List photos of an event")
    lp_parser.add_argument("event_id", help="Event ID")
    lp_parser.add_argument(
        "--include-private", action="store_true", help="Also list private photos"
    )

    # delete-photo
    dp_parser = subparsers.add_parser("delete-photo", help="Delete a photo and its embeddings")
    dp_parser.add_argument("photo_id", help="Photo ID")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    from event_face_search.config import setup_logging

    setup_logging()

    if args.command == "init-db":
        from event_face_search.db import get_connection

        conn = get_connection(args.db)
        conn.close()
        print("Database initialized successfully.")

    elif args.command == "create-event":
        from event_face_search.db import get_connection
        from event_face_search.manager.repository import create_event

        conn = get_connection(args.db)
        event = create_event(conn, args.name, args.banner)
        conn.close()
        print(f"Created event {event.id}  {event.name}")

    elif args.command == "list-events":
        from event_face_search.db import get_connection
        from event_face_search.manager.repository import list_events

        conn = get_connection(args.db)
        events = list_events(conn)
        conn.close()
        for event in events:
            print(f"  {event.id}  {event.created_at:%Y-%m-%d %H:%M}  {event.name}")

    elif args.command == "delete-event":
        _cmd_delete_event(args)

    elif args.command == "list-photos":
        from event_face_search.db import get_connection
        from event_face_search.embedding.face_repository import list_photos

        conn = get_connection(args.db)
        photos = list_photos(conn, args.event_id, include_private=args.include_private)
        conn.close()
        for photo in photos:
            print(f"[{photo.visibility:>7}] {photo.id}  {photo.url}")

    elif args.command == "delete-photo":
        _cmd_delete_photo(args)


def _cmd_delete_event(args: argparse.Namespace) -> None:
    """Delete an event, then its stored objects."""
    from event_face_search.db import get_connection
    from event_face_search.manager.repository import delete_event
    from event_face_search.manager.storage import LocalObjectStorage

    conn = get_connection(args.db)
    deleted = delete_event(conn, args.event_id)
    conn.close()
    if deleted is None:
        print(f"Event {args.event_id} not found.")
        return
    removed = LocalObjectStorage().delete_prefix(f"events/{deleted.id}")
    print(f"Deleted event '{deleted.name}' and {removed} stored file(s).")


def _cmd_delete_photo(args: argparse.Namespace) -> None:
    """Delete a photo, then its stored bytes."""
    from event_face_search.db import get_connection
    from event_face_search.embedding.face_repository import delete_photo
    from event_face_search.manager.storage import LocalObjectStorage

    conn = get_connection(args.db)
    deleted = delete_photo(conn, args.photo_id)
    conn.close()
    if deleted is None:
        print(f"Photo {args.photo_id} not found.")
        return
    storage = LocalObjectStorage()
    if storage.owns(deleted.url):
        storage.delete(deleted.url)
    print(f"Deleted photo {deleted.id}.")
