import argparse
import asyncio
import functools
import logging
import sys

from gaze_rooms.configs import AppSettings
from gaze_rooms.core import RoomSession
from gaze_rooms.feed import ViewFeed, view_message
from gaze_rooms.providers import DummyGazeProvider, ProviderFactory
from gaze_rooms.realtime import InMemoryRealtimeHub, PhoenixRealtimeClient, RealtimeClient

logger = logging.getLogger("gaze_rooms")


def build_client(settings: AppSettings, in_memory: bool) -> RealtimeClient:
    rt = settings.realtime
    if in_memory or rt.use_in_memory:
        logger.warning("Using the in-memory realtime hub (single process only).")
        return InMemoryRealtimeHub()
    return PhoenixRealtimeClient(
        rt.url,
        api_key=rt.api_key,
        heartbeat_interval_s=rt.heartbeat_interval_s,
        join_timeout_s=rt.join_timeout_s,
    )


def build_provider_factory(settings: AppSettings, dummy: bool) -> ProviderFactory:
    viewport = settings.viewport
    if dummy or settings.use_dummy_mode:
        logger.warning("Initializing DUMMY gaze provider (Simulation Mode)")
        return functools.partial(DummyGazeProvider, width=viewport.width_px, height=viewport.height_px)

    from gaze_rooms.providers.webcam import WebcamGazeProvider

    logger.info("Initializing webcam gaze provider")
    return functools.partial(WebcamGazeProvider, width=viewport.width_px, height=viewport.height_px)


async def run(settings: AppSettings, args: argparse.Namespace) -> int:
    client = build_client(settings, args.in_memory)
    feed = ViewFeed(settings.feed.host) if settings.feed.enabled else None

    try:
        await client.connect()
        if feed is not None:
            await feed.start()

        session = RoomSession(client, build_provider_factory(settings, args.dummy), settings)
        async with session:
            await session.calibrate()
            if not await session.join():
                logger.error("Not connected.")
                return 1

            logger.info(f"Joined room {session.room.number} as {session.participant_id}")
            elapsed = 0.0
            while args.duration is None or elapsed < args.duration:
                await asyncio.sleep(args.interval)
                elapsed += args.interval

                flags = {"connected": session.connected, "calibrated": session.calibrated, "joined": session.joined}
                if feed is not None:
                    await feed.send(view_message(session.view, session.eye_tracking_state, flags))
                logger.info(
                    f"room={session.room.number} peers={len(session.view)} "
                    f"blinking={session.pipeline.detector.is_blinking}"
                )
        return 0

    finally:
        await client.close()
        if feed is not None:
            await feed.close()


def main() -> None:
    """
    The main entry point: joins a room and keeps broadcasting until the
    duration elapses or the process is interrupted.
    """
    parser = argparse.ArgumentParser(description="Gaze Rooms client")
    parser.add_argument("--dummy", action="store_true", help="Use the simulated gaze provider instead of the webcam.")
    parser.add_argument("--in-memory", action="store_true", help="Use the process-local realtime hub.")
    parser.add_argument("--duration", type=float, default=None, help="Seconds to stay in the room.")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between status updates.")
    args = parser.parse_args()

    # 1. Load Configuration
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"Configuration Error: {e}")
        sys.exit(1)

    # 2. Setup Logging
    settings.logging.apply(stream=sys.stdout)
    logger.info(f"Starting Gaze Rooms v{settings.version}")

    try:
        sys.exit(asyncio.run(run(settings, args)))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    except Exception:
        logger.exception("Fatal Application Error")
        sys.exit(1)


if __name__ == "__main__":
    main()
