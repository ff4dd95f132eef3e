"""Face annotation CLI: run detection and edit per-event face records."""

import argparse


def main() -> None:
    """CLI entry point for face annotation operations."""
    parser = argparse.ArgumentParser(description="Event photo face annotation")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command")

    # init-db
    subparsers.add_parser("init-db", help="Initialize the activity log database")

    # process
    proc_parser = subparsers.add_parser(
        "process", help="Run face detection synchronously for one or more events"
    )
    proc_parser.add_argument("event_ids", type=int, nargs="+", help="Event IDs")
    proc_parser.add_argument(
        "--image",
        help="Image to process instead of the stored original (single event only)",
    )

    # status
    status_parser = subparsers.add_parser("status", help="Show derived processing status")
    status_parser.add_argument("event_id", type=int, help="Event ID")

    # add-face
    add_parser = subparsers.add_parser("add-face", help="Manually add a face box")
    add_parser.add_argument("event_id", type=int, help="Event ID")
    for coord in ("x1", "y1", "x2", "y2"):
        add_parser.add_argument(coord, type=int)
    add_parser.add_argument("--face-id", help="Face ID (default: manual_<ms timestamp>)")

    # delete-face
    del_parser = subparsers.add_parser(
        "delete-face", help="Delete a face with its avatars and metadata entry"
    )
    del_parser.add_argument("event_id", type=int, help="Event ID")
    del_parser.add_argument("filename", help="Face filename, e.g. face_1.jpg")

    # qq-avatar
    qq_parser = subparsers.add_parser("qq-avatar", help="Attach a QQ avatar to a face")
    qq_parser.add_argument("event_id", type=int, help="Event ID")
    qq_parser.add_argument("face", help="Face filename")
    qq_parser.add_argument("qq_number", help="QQ number")

    # logs
    logs_parser = subparsers.add_parser("logs", help="Show the activity log")
    logs_parser.add_argument("--level", help="Filter by level")
    logs_parser.add_argument("--module", help="Filter by module")
    logs_parser.add_argument("--page", type=int, default=1, help="Page (default: 1)")
    logs_parser.add_argument("--per-page", type=int, default=20, help="Page size (default: 20)")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    from event_faces.config import LOG_LEVEL
    from event_faces.log import setup_logging

    setup_logging(args.log_level or LOG_LEVEL)

    if args.command == "init-db":
        from event_faces.db import get_connection

        conn = get_connection()
        conn.close()
        print("Database initialized successfully.")
    elif args.command == "process":
        _cmd_process(args)
    elif args.command == "status":
        _cmd_status(args)
    elif args.command == "add-face":
        _cmd_add_face(args)
    elif args.command == "delete-face":
        _cmd_delete_face(args)
    elif args.command == "qq-avatar":
        _cmd_qq_avatar(args)
    elif args.command == "logs":
        _cmd_logs(args)


def _open_service():
    """Build a service backed by the configured storage dir and activity log."""
    from event_faces.pipeline.orchestrator import FaceAnnotationService
    from event_faces.storage.activity_log import ActivityLog

    return FaceAnnotationService(activity_log=ActivityLog.open())


def _cmd_process(args: argparse.Namespace) -> None:
    """Run detection for each event and report face counts."""
    from pathlib import Path

    from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

    from event_faces.errors import FaceAnnotationError

    if args.image and len(args.event_ids) > 1:
        print("Error: --image can only be used with a single event ID")
        return

    image_path = Path(args.image) if args.image else None
    total_faces = 0
    errors = 0

    with _open_service() as service:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
        ) as progress:
            task = progress.add_task("Detecting faces", total=len(args.event_ids))
            for event_id in args.event_ids:
                try:
                    record = service.process_event_image(event_id, image_path)
                    total_faces += len(record.faces)
                except (FaceAnnotationError, OSError, ValueError) as exc:
                    errors += 1
                    progress.console.print(f"[red]Event {event_id}: {exc}")
                progress.advance(task)

    print("\nDone.")
    print(f"  Events processed: {len(args.event_ids)}")
    print(f"  Faces detected: {total_faces}")
    if errors > 0:
        print(f"  Errors: {errors}")


def _cmd_status(args: argparse.Namespace) -> None:
    from event_faces.pipeline.orchestrator import FaceAnnotationService

    with FaceAnnotationService() as service:
        status = service.get_status(args.event_id)
    print(f"Event {args.event_id}: {status['status']}")
    print(f"  {status['message']}")


def _cmd_add_face(args: argparse.Namespace) -> None:
    from event_faces.errors import FaceAnnotationError

    with _open_service() as service:
        try:
            face = service.add_manual_face(
                args.event_id, args.x1, args.y1, args.x2, args.y2, face_id=args.face_id
            )
        except FaceAnnotationError as exc:
            print(f"Error: {exc}")
            return
    c = face.coordinates
    print(f"Added {face.filename} at ({c.x1}, {c.y1}, {c.x2}, {c.y2})")


def _cmd_delete_face(args: argparse.Namespace) -> None:
    from event_faces.errors import FaceAnnotationError

    with _open_service() as service:
        try:
            service.delete_face(args.event_id, args.filename)
        except (FaceAnnotationError, OSError) as exc:
            print(f"Error: {exc}")
            return
    print(f"Deleted {args.filename} from event {args.event_id}.")


def _cmd_qq_avatar(args: argparse.Namespace) -> None:
    with _open_service() as service:
        nickname = service.qq_nickname(args.qq_number)["nickname"]
        info = service.request_qq_avatar(args.event_id, args.face, args.qq_number).result()
    if info is None:
        print("Failed to download QQ avatar (see log).")
        return
    print(f"Saved avatar {info.filename} for {nickname} ({info.qq_number}).")


def _cmd_logs(args: argparse.Namespace) -> None:
    from event_faces.storage.activity_log import ActivityLog

    log = ActivityLog.open()
    entries, total = log.query(
        page=args.page, per_page=args.per_page, level=args.level, module=args.module
    )
    log.close()
    print(f"{total} entries (page {args.page})")
    for e in entries:
        event = f" event={e.event_id}" if e.event_id else ""
        print(f"  {e.timestamp:%Y-%m-%d %H:%M:%S} {e.level:<7} {e.module}/{e.action}{event}")
