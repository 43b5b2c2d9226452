#!/usr/bin/env python3
"""
Replay a recorded GPX or FIT track against the Pacemates API as a live run.

By default the script behaves like the phone app: it starts a run at the
first point, posts one position every --interval seconds, then finishes the
run and prints the saved result and the runner's updated totals.

With --server-side the file is uploaded instead and the backend replays it
at its own REPLAY_INTERVAL_SECONDS cadence; the script only follows progress.

Usage examples:
  - Against a local backend:
      python scripts/simulate_run.py --base-url http://localhost:8000 --owner ana track.gpx
  - Faster than real time, abandoning the run at the end:
      python scripts/simulate_run.py --base-url http://localhost:8000 --owner bruno \
          --interval 0.2 --cancel track.fit
  - Replayed by the backend:
      python scripts/simulate_run.py --base-url http://localhost:8000 --owner carla \
          --server-side track.gpx
"""

from __future__ import annotations

import argparse
import os
import sys
import time

import httpx

from pacemates.core.errors import UnreadableTrack
from pacemates.tracking.replay import load_track


def post_json(client: httpx.Client, path: str, payload: dict | None = None, **kwargs) -> dict:
    r = client.post(path, json=payload, **kwargs)
    if r.status_code >= 300:
        raise RuntimeError(f"{path} -> HTTP {r.status_code}: {r.text}")
    return r.json()


def report(state: dict, done: int, total: int) -> None:
    print(f"  {state['elapsed']}  {state['distance_km']:.2f} km  ({done}/{total})")


def wrap_up(client: httpx.Client, owner: str, cancel: bool) -> None:
    if cancel:
        post_json(client, f"/tracking/{owner}/cancel")
        print("run cancelled")
        return

    run = post_json(client, f"/tracking/{owner}/finish")
    print(f"saved run {run['id']}: {run['distance_km']:.2f} km in {run['duration']} ({run['pace']})")

    stats = client.get(f"/users/{owner}/stats").json()
    print(f"{owner}: {stats['total_runs']} runs, {stats['total_distance_km']} km, {stats['total_time']}")


def simulate(base_url: str, owner: str, coords, interval: float, cancel: bool) -> None:
    with httpx.Client(base_url=base_url.rstrip("/"), timeout=15) as client:
        first = coords[0]
        state = post_json(
            client,
            f"/tracking/{owner}/start",
            {"latitude": first.latitude, "longitude": first.longitude},
        )
        print(f"started session {state['session_id']} at {first.latitude:.5f},{first.longitude:.5f}")

        for i, c in enumerate(coords[1:], start=1):
            time.sleep(interval)
            state = post_json(
                client,
                f"/tracking/{owner}/positions",
                {"latitude": c.latitude, "longitude": c.longitude},
            )
            if i % 10 == 0:
                report(state, i, len(coords) - 1)

        wrap_up(client, owner, cancel)


def simulate_server_side(base_url: str, owner: str, path: str, total: int, poll: float, cancel: bool) -> None:
    with httpx.Client(base_url=base_url.rstrip("/"), timeout=15) as client:
        with open(path, "rb") as f:
            state = post_json(
                client,
                f"/tracking/{owner}/replay",
                files={"file": (os.path.basename(path), f)},
            )
        print(f"backend replaying {total} points as session {state['session_id']}")

        while state["status"] == "active" and len(state["route"]) < total:
            time.sleep(poll)
            state = client.get(f"/tracking/{owner}").json()
            report(state, len(state["route"]), total)

        if state["status"] != "active":
            print(f"run ended early: {state['status']} ({state.get('error')})", file=sys.stderr)
            sys.exit(1)
        wrap_up(client, owner, cancel)


def main() -> None:
    ap = argparse.ArgumentParser(description="Replay a GPX/FIT track as a live run")
    ap.add_argument("track", help="Path to a .gpx or .fit file")
    ap.add_argument("--base-url", required=True, help="API base URL (e.g., http://localhost:8000)")
    ap.add_argument("--owner", required=True, help="Runner id to track the run under")
    ap.add_argument("--interval", type=float, default=1.0,
                    help="Seconds between posted positions (polling period with --server-side)")
    ap.add_argument("--cancel", action="store_true", help="Cancel instead of finishing at the end")
    ap.add_argument("--server-side", action="store_true", help="Upload the track and let the backend replay it")
    args = ap.parse_args()

    try:
        coords = load_track(args.track)
    except UnreadableTrack as e:
        print(f"{args.track}: {e}", file=sys.stderr)
        sys.exit(1)
    if len(coords) < 2:
        print(f"{args.track}: needs at least two positions", file=sys.stderr)
        sys.exit(1)

    if args.server_side:
        simulate_server_side(args.base_url, args.owner, args.track, len(coords), args.interval, args.cancel)
    else:
        simulate(args.base_url, args.owner, coords, args.interval, args.cancel)


if __name__ == "__main__":
    main()
