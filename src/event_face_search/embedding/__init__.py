"""Embedding CLI: ingest photos, reindex events, and report face stats."""

import argparse


def main() -> None:
    """CLI entry point for embedding operations."""
    parser = argparse.ArgumentParser(description="Event face search embedding")
    parser.add_argument("--db", help="DuckDB file (default: EFS_DB_PATH or project root)")
    subparsers = parser.add_subparsers(dest="command")

    # ingest
    ingest_parser = subparsers.add_parser(
        "ingest", help="Detect faces in image files and add them to an event"
    )
    ingest_parser.add_argument("event_id", help="Event ID")
    ingest_parser.add_argument("paths", nargs="+", help="Image files or directories")
    ingest_parser.add_argument(
        "--private", action="store_true", help="Store photos as private (hidden from gallery)"
    )
    ingest_parser.add_argument(
        "--device", default="cuda", help="Device: cuda or cpu (default: cuda)"
    )
    ingest_parser.add_argument(
        "--no-compress", action="store_true", help="Upload original bytes without recompression"
    )

    # reindex
    reindex_parser = subparsers.add_parser(
        "reindex", help="Re-extract faces for every photo of an event"
    )
    reindex_parser.add_argument("event_id", help="Event ID")
    reindex_parser.add_argument(
        "--device", default="cuda", help="Device: cuda or cpu (default: cuda)"
    )

    # status
    status_parser = subparsers.add_parser("status", help="Show face index status of an event")
    status_parser.add_argument("event_id", help="Event ID")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    from event_face_search.config import setup_logging

    setup_logging()

    if args.command == "ingest":
        _cmd_ingest(args)
    elif args.command == "reindex":
        _cmd_reindex(args)
    elif args.command == "status":
        _cmd_status(args)


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}


def _collect_images(paths: list[str]) -> list:
    """Expand directories into the image files they contain."""
    from pathlib import Path

    files = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(
                sorted(p for p in path.rglob("*") if p.suffix.lower() in IMAGE_EXTENSIONS)
            )
        elif path.exists():
            files.append(path)
        else:
            print(f"Skipping missing path: {path}")
    return files


def _progress():
    from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("{task.completed}/{task.total}"),
    )


def _cmd_ingest(args: argparse.Namespace) -> None:
    """Ingest image files into an event."""
    from event_face_search.config import FACE_EMBEDDING_DIM
    from event_face_search.db import get_connection
    from event_face_search.embedding.ingest import IndexingPipeline, UploadItem
    from event_face_search.embedding.insightface_embedder import InsightFaceExtractor
    from event_face_search.manager.repository import get_event
    from event_face_search.manager.storage import LocalObjectStorage
    from event_face_search.models import PRIVATE, PUBLIC

    conn = get_connection(args.db)
    if get_event(conn, args.event_id) is None:
        print(f"Event {args.event_id} not found.")
        conn.close()
        return

    files = _collect_images(args.paths)
    if not files:
        print("No images to ingest.")
        conn.close()
        return

    if InsightFaceExtractor.dim != FACE_EMBEDDING_DIM:
        print(
            f"InsightFace produces {InsightFaceExtractor.dim}-dim embeddings but "
            f"FACE_EMBEDDING_DIM is {FACE_EMBEDDING_DIM}; set it to match before ingesting."
        )
        conn.close()
        return

    print(f"Found {len(files)} images to ingest.")
    print(f"Loading InsightFace model on {args.device}...")
    pipeline = IndexingPipeline(
        conn,
        InsightFaceExtractor(device=args.device),
        LocalObjectStorage(),
        compress=not args.no_compress,
    )
    # Bytes are read per item, inside the pipeline's failure boundary
    items = (UploadItem(filename=path.name, path=path) for path in files)

    with _progress() as progress:
        task = progress.add_task("Ingesting photos", total=len(files))
        result = pipeline.ingest_batch(
            args.event_id,
            items,
            visibility=PRIVATE if args.private else PUBLIC,
            on_progress=lambda current, total: progress.update(task, completed=current),
            total=len(files),
        )

    conn.close()
    faces = sum(o.face_count for o in result.outcomes if o.ok)
    print("\nDone.")
    print(f"  Photos: {result.summary()}")
    print(f"  Faces detected: {faces}")
    for failure in result.failures:
        print(f"  Failed: {failure.name}: {failure.error}")


def _cmd_reindex(args: argparse.Namespace) -> None:
    """Re-extract faces for every photo of an event."""
    from event_face_search.db import get_connection
    from event_face_search.embedding.insightface_embedder import InsightFaceExtractor
    from event_face_search.embedding.reindex import ReindexCoordinator
    from event_face_search.manager.downloader import fetch_image_bytes
    from event_face_search.manager.repository import get_event
    from event_face_search.manager.storage import LocalObjectStorage

    conn = get_connection(args.db)
    if get_event(conn, args.event_id) is None:
        print(f"Event {args.event_id} not found.")
        conn.close()
        return

    print(f"Loading InsightFace model on {args.device}...")
    storage = LocalObjectStorage()
    coordinator = ReindexCoordinator(
        conn,
        InsightFaceExtractor(device=args.device),
        fetch=lambda url: fetch_image_bytes(url, storage),
    )

    with _progress() as progress:
        task = progress.add_task("Re-indexing photos", total=None)
        try:
            result = coordinator.run(
                args.event_id,
                on_progress=lambda current, total: progress.update(
                    task, completed=current, total=total
                ),
            )
        except KeyboardInterrupt:
            # Photos finished so far keep their new embeddings
            print(f"\nInterrupted at {coordinator.current}/{coordinator.total}.")
            conn.close()
            return

    conn.close()
    print(f"\nReindex {result.state.value}.")
    print(f"  Photos: {result.batch.summary()}")
    print(f"  Faces detected: {sum(o.face_count for o in result.batch.outcomes if o.ok)}")
    for failure in result.batch.failures:
        print(f"  Failed: {failure.photo_id}: {failure.error}")


def _cmd_status(args: argparse.Namespace) -> None:
    """Show face index status of an event."""
    from event_face_search.config import DB_PATH
    from event_face_search.db import get_connection
    from event_face_search.embedding.face_repository import get_face_stats

    conn = get_connection(args.db)
    photos, with_faces, faces = get_face_stats(conn, args.event_id)
    conn.close()
    print(f"Event: {args.event_id}")
    print(f"DB: {args.db or DB_PATH}")
    print(f"Photos: {photos}")
    print(f"Photos with faces: {with_faces}")
    print(f"Faces indexed: {faces}")
    if with_faces > 0:
        print(f"Average faces per photo with faces: {faces / with_faces:.1f}")
