#!/usr/bin/env python3
"""
Live RoadSense monitor.

Connects to a logger, starts a survey, prints telemetry for a while and
stops the survey again.

Usage:
    python examples/live_monitor.py [config.cfg] [port]
"""

import sys
import time
from pathlib import Path

from roadsense import AutoReconnector, RoadsenseLink, create_stream, load_config
from roadsense.config import TransportConfig, configure_logging


def print_sample(sample):
    if sample is None:
        print("\nNo live data")
        return
    print(f"\r{sample.source.value:>9} | {sample.distance_m:9.1f} m | "
          f"{sample.speed_kmh:5.1f} km/h | Z {sample.accel_z:+.2f} | "
          f"q {sample.quality_score:.1f} | {sample.status}", end="")
    sys.stdout.flush()


def main():
    config = load_config(Path(sys.argv[1]) if len(sys.argv) > 1 else None)
    configure_logging(config)

    transport = config.transport
    if len(sys.argv) > 2:
        transport = TransportConfig(port=sys.argv[2])

    link = RoadsenseLink(create_stream(transport), config=config)
    link.subscribe_state(lambda state: print(f"\nLink: {state.status.value} {state.reason or ''}"))
    link.subscribe_samples(print_sample)

    reconnector = None
    if config.reconnect.enabled:
        reconnector = AutoReconnector(link, config.reconnect)
        reconnector.start()

    print(f"Connecting to {transport.port}...")
    if not link.connect():
        print("Failed to connect! Is the logger paired and powered?")
        if reconnector:
            reconnector.stop()
        return

    try:
        status = link.query_status()
        print(f"\nLogger state: {status.state if status else 'unknown'}")

        result = link.start_survey()
        print(f"\nStart survey: {result}")

        print("\nMonitoring for 30 seconds (Ctrl+C to stop)...")
        time.sleep(30)

        print(f"\n\nStop survey: {link.stop_survey()}")

    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    finally:
        if reconnector:
            reconnector.stop()
        link.disconnect()

        metrics = link.commands.metrics
        print(f"\nCommands: {metrics.total_commands} total, "
              f"{metrics.success_rate:.0f}% ok, avg {metrics.average_response_ms:.0f} ms")
        print(f"Lines: {link.stats}")
        print("Done.")


if __name__ == "__main__":
    main()
