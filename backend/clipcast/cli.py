"""
Command line entry point.

Usage:
    clipcast process <media_path> [--top-n 10] [--auto-schedule]
    clipcast detect <transcript.json> [--max-duration 60] [--top-n 10]
    clipcast schedule <clip_id> [<clip_id> ...] [--at <iso time> ...]
    clipcast worker [--once]
    clipcast serve

Example:
    clipcast detect ./episode_transcript.json --top-n 5
"""
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from clipcast.config import settings
from clipcast.container import (
    build_episode_processor,
    build_scheduler,
    build_upload_worker,
    detection_config_from_settings,
)
from clipcast.db.database import close_db, init_db
from clipcast.pipeline.detection import detect_clips
from clipcast.pipeline.orchestrator import EpisodeProcessingError
from clipcast.pipeline.transcript import clean_transcript, segments_from_json

logger = logging.getLogger("clipcast.cli")


async def run_process(media_path: Path, filename: Optional[str], top_n: int, auto_schedule: bool) -> int:
    if not media_path.is_file():
        raise FileNotFoundError(f"Media not found: {media_path}")

    await init_db()
    try:
        processor = build_episode_processor()
        result = await processor.process_episode(media_path, filename or media_path.name, top_n=top_n)

        output = result.to_dict()
        if auto_schedule and result.clip_ids:
            output["upload_ids"] = await build_scheduler().auto_schedule(result.clip_ids)

        print(json.dumps(output, indent=2))
        return 1 if result.has_errors else 0
    finally:
        await close_db()


def run_detect(transcript_path: Path, max_duration: float, top_n: int) -> int:
    with open(transcript_path) as f:
        segments = clean_transcript(segments_from_json(json.load(f)))

    candidates = detect_clips(
        segments,
        max_duration=max_duration,
        top_n=top_n,
        config=detection_config_from_settings(),
    )
    print(json.dumps([c.to_dict() for c in candidates], indent=2))
    return 0


async def run_schedule(clip_ids: List[int], times: List[datetime]) -> int:
    await init_db()
    try:
        scheduler = build_scheduler()
        if times:
            upload_ids = await scheduler.schedule_for_upload(clip_ids, times)
        else:
            upload_ids = await scheduler.auto_schedule(clip_ids)
        print(json.dumps({"upload_ids": upload_ids}))
        return 0
    finally:
        await close_db()


async def run_worker(once: bool) -> int:
    await init_db()
    worker = build_upload_worker()
    try:
        if once:
            outcome = await worker.tick()
            print(json.dumps(asdict(outcome) if outcome else None, indent=2, default=str))
            return 0 if outcome is None or outcome.succeeded else 1

        worker.start()
        # Runs until interrupted
        await asyncio.Event().wait()
        return 0
    finally:
        await worker.shutdown()
        await close_db()


def _parse_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid ISO time: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipcast",
        description="Turn long-form episodes into scheduled short-form clips",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    process = sub.add_parser("process", help="Process an episode into clips")
    process.add_argument("media_path", type=Path, help="Path to the episode media")
    process.add_argument("--filename", help="Display name for the episode")
    process.add_argument("--top-n", type=int, default=settings.top_n, help="Maximum clips to produce")
    process.add_argument("--auto-schedule", action="store_true", help="Schedule clips into the next publish slots")

    detect = sub.add_parser("detect", help="Run candidate detection on a transcript JSON file")
    detect.add_argument("transcript", type=Path, help="Transcript JSON (list of segments)")
    detect.add_argument("--max-duration", type=float, default=settings.max_clip_seconds)
    detect.add_argument("--top-n", type=int, default=settings.top_n)

    schedule = sub.add_parser("schedule", help="Schedule clips for upload")
    schedule.add_argument("clip_ids", type=int, nargs="+", help="Clip ids, in publish order")
    schedule.add_argument(
        "--at",
        dest="times",
        type=_parse_time,
        nargs="+",
        default=[],
        help="Publish times (ISO format, paired with clip ids); defaults to the next daily slots",
    )

    worker = sub.add_parser("worker", help="Run the upload worker")
    worker.add_argument("--once", action="store_true", help="Run a single tick and exit")

    sub.add_parser("serve", help="Run the HTTP API")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose or settings.debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    try:
        if args.command == "process":
            return asyncio.run(run_process(args.media_path, args.filename, args.top_n, args.auto_schedule))
        if args.command == "detect":
            return run_detect(args.transcript, args.max_duration, args.top_n)
        if args.command == "schedule":
            return asyncio.run(run_schedule(args.clip_ids, args.times))
        if args.command == "worker":
            return asyncio.run(run_worker(args.once))
        if args.command == "serve":
            import uvicorn
            uvicorn.run("clipcast.main:app", host=settings.host, port=settings.port, reload=settings.debug)
            return 0
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 2
    except EpisodeProcessingError as e:
        logger.error(f"Episode processing failed during {e.stage}: {e}")
        return 1
    except KeyboardInterrupt:
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
