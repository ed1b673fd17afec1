#!/usr/bin/env python3
"""
Frame Feeding Script
====================

Standalone script that drives a running ProctorAgent with still images.

This script:
    1. Connects to the agent's /ws/proctor endpoint
    2. Opens a session (optionally with a strictness config)
    3. Sends images at a fixed FPS for a configurable duration
    4. Reports violations, errors and a final summary

Prerequisites:
    - ProctorAgent must be running (python -m proctor_agent.main)
    - A JPEG file or a directory of images to replay

Usage:
    python scripts/feed_frames.py samples/ --duration 30
    python scripts/feed_frames.py frame.jpg --fps 2 --strictness high
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from proctor_agent.stream import FrameFeeder, load_frames


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_feed(
    url: str,
    path: str,
    duration: int,
    fps: float,
    strictness: str,
) -> dict:
    """
    Feed frames into a session.

    Args:
        url: WebSocket URL of the agent
        path: Image file or directory
        duration: Feed duration in seconds
        fps: Frames per second
        strictness: Strictness sent as session config ("" to skip)

    Returns:
        Final metrics dict
    """
    frames = load_frames(path)

    logger.info("=" * 60)
    logger.info("Proctoring Frame Feed")
    logger.info("=" * 60)
    logger.info(f"Agent URL: {url}")
    logger.info(f"Images: {len(frames)} from {path}")
    logger.info(f"Duration: {duration} seconds at {fps} FPS")
    logger.info(f"Strictness: {strictness or 'server default'}")
    logger.info("=" * 60)

    feeder = FrameFeeder(
        url=url,
        frames=frames,
        fps=fps,
        config={"strictness": strictness} if strictness else None,
    )

    start_time = time.time()
    try:
        await feeder.run(duration_seconds=duration)
    except KeyboardInterrupt:
        logger.info("Feed interrupted by user")
        feeder.stop()

    total_time = time.time() - start_time
    metrics = feeder.metrics

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames sent: {metrics.frames_sent}")
    logger.info(f"Session opened: {metrics.opened}")
    logger.info(f"Violations: {metrics.violations}")
    logger.info(f"Errors: {metrics.errors}")
    logger.info(f"Warnings: {metrics.warnings}")
    logger.info("=" * 60)

    if metrics.opened and metrics.errors == 0:
        logger.info("✅ FEED COMPLETED - Session opened without errors")
    else:
        logger.error("❌ FEED FAILED - Session did not open or reported errors")

    return {"duration": total_time, **metrics.to_dict()}


def main():
    parser = argparse.ArgumentParser(
        description="Replay images into a ProctorAgent session"
    )
    parser.add_argument(
        "path",
        type=str,
        help="Image file or directory of images",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("PROCTOR_AGENT_URL", "ws://localhost:8080/ws/proctor"),
        help="WebSocket URL of the agent",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=30,
        help="Feed duration in seconds (default: 30)",
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=1.0,
        help="Frames per second (default: 1)",
    )
    parser.add_argument(
        "--strictness",
        type=str,
        choices=["low", "medium", "high"],
        default="",
        help="Session strictness (default: server setting)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_feed(
        url=args.url,
        path=args.path,
        duration=args.duration,
        fps=args.fps,
        strictness=args.strictness,
    ))

    sys.exit(0 if result["opened"] and result["errors"] == 0 else 1)


if __name__ == "__main__":
    main()
