#!/usr/bin/env python3
"""
POSEMATCH - Local Camera Runner

Runs the live matching loop against a local webcam and logs the score.

Usage:
    python scripts/run_local_camera.py
    python scripts/run_local_camera.py --mode multi-subject --camera 1 --hz 15
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import MatchConfig, settings
from core.threading import ml_worker_pool, video_worker_pool
from matching_service.models import EnvironmentUnavailable, MediaPipePoseEstimator, PoseMatchService
from matching_service.sources import (
    CameraVideoSource,
    DisplayRefreshTicker,
    LoggingRenderSink,
    ReferenceImageSource,
)
from shared.utils import LOG_DATE_FORMAT, LOG_FORMAT, parse_log_level

logger = logging.getLogger("posematch.local")


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Score a live webcam feed against a reference pose image',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
---------
  python scripts/run_local_camera.py --reference ./reference.jpg
  python scripts/run_local_camera.py --mode multi-subject --max-frames 300
        """
    )
    parser.add_argument('--camera', type=int, default=settings.CAMERA_INDEX, help='Camera device index')
    parser.add_argument('--reference', default=settings.REFERENCE_IMAGE,
                        help='Reference image id (appended to the bucket URL), URL or local path')
    parser.add_argument('--model', default=settings.POSE_MODEL_PATH, help='MediaPipe pose landmarker .task file')
    parser.add_argument('--mode', choices=['single-subject', 'multi-subject'], default=settings.ESTIMATION_MODE)
    parser.add_argument('--hz', type=float, default=settings.DISPLAY_REFRESH_HZ, help='Display refresh rate')
    parser.add_argument('--max-frames', type=int, default=None, help='Stop after N frames')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    config = replace(MatchConfig.from_settings(settings), mode=args.mode, reference_image=args.reference)
    service = PoseMatchService(
        estimator=MediaPipePoseEstimator(args.model),
        image_source=ReferenceImageSource(bucket=settings.REFERENCE_IMAGE_BUCKET),
        config=config,
    )

    await service.startup()
    sink = LoggingRenderSink()
    try:
        await service.run_stream(
            CameraVideoSource(args.camera, settings.VIDEO_WIDTH, settings.VIDEO_HEIGHT),
            DisplayRefreshTicker(args.hz),
            sink,
            max_ticks=args.max_frames,
        )
    except EnvironmentUnavailable as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        await service.shutdown()

    logger.info(f"Processed {sink.frames} frames, last score: {sink.last_score}")
    return 0


def main():
    """Main entry point."""
    args = parse_arguments()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else parse_log_level(settings.LOG_LEVEL),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    try:
        code = asyncio.run(run(args))
    finally:
        video_worker_pool.shutdown(wait=False)
        ml_worker_pool.shutdown(wait=False)
    sys.exit(code)


if __name__ == '__main__':
    main()
