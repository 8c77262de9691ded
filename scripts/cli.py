"""
CLI: read a text file with webcam emotion monitoring and take breaks on stdin.

Usage:
    python scripts/cli.py --text notes.md [--preview] [--classifier brightness]

Commands while reading: m = take a break, n/p = next/previous page, q = quit.
Inside an activity, x ends it early. Events are printed as JSON lines; 'q' in
the preview window also quits.
"""
from __future__ import annotations
import argparse
import asyncio
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Optional

import cv2

from reading_core.config import Settings
from reading_core.controller import SessionController
from reading_core import events as ev
from reading_core.errors import DeviceUnavailable, InvalidTransition
from reading_core.models import EMOJI, Emotion, SessionState
from reading_core.relief_content import ACTIVITY_CHOICES
from reading_core.visual import draw_overlays

PREVIEW_REFRESH = 0.1
_EOF = object()


class StdinLines:
    """
    Lines from stdin, read on a daemon thread so a pending read never holds
    up interpreter shutdown.
    """

    def __init__(self, stop: asyncio.Event):
        self.stop = stop
        self.queue: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()

        def pump():
            for line in sys.stdin:
                loop.call_soon_threadsafe(self.queue.put_nowait, line)
            loop.call_soon_threadsafe(self.queue.put_nowait, _EOF)

        threading.Thread(target=pump, name="stdin-reader", daemon=True).start()

    async def ask(self, prompt: str, wake: Optional[asyncio.Event] = None) -> Optional[str]:
        """Next stripped line, or None when `wake` or stop fires first."""
        print(prompt, end="", flush=True)
        getter = asyncio.ensure_future(self.queue.get())
        waiters = [getter, asyncio.ensure_future(self.stop.wait())]
        if wake is not None:
            waiters.append(asyncio.ensure_future(wake.wait()))
        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for w in pending:
            w.cancel()
        if getter not in done:
            print()
            return None
        line = getter.result()
        if line is _EOF:
            self.stop.set()
            return None
        return line.strip()


async def _preview(session: SessionController, stop: asyncio.Event) -> None:
    """UI refresh tick: redraw the latest camera frame with the emotion overlay."""
    while not stop.is_set():
        frame = session.sampler.last_frame
        if frame is not None:
            annotated = draw_overlays(frame, session.last_sample, session.state.value)
            cv2.imshow("Reading session (q to quit)", annotated)
        if (cv2.waitKey(1) & 0xFF) == ord("q"):
            stop.set()
            break
        await asyncio.sleep(PREVIEW_REFRESH)
    cv2.destroyAllWindows()


async def _play(session: SessionController, lines: StdinLines, changed: asyncio.Event) -> None:
    activity = session.activity
    while session.state == SessionState.BREAK_ACTIVE and session.activity is activity:
        aid = activity.activity_id
        changed.clear()
        if aid == "quiz":
            item = activity.current
            print(item["question"])
            for i, opt in enumerate(item["options"]):
                print(f"  {i}) {opt}")
            value = await lines.ask("answer> ", changed)
        elif aid == "riddle":
            print(activity.current["prompt"])
            value = await lines.ask("answer> ", changed)
        elif aid == "sequence_memory":
            if not activity.entered:
                print("Repeat: " + " ".join(activity.target))
            print("Symbols: " + " ".join(f"{i}={s}" for i, s in enumerate(activity.symbols)))
            value = await lines.ask("symbol #> ", changed)
            if value is not None and value.isdigit() and int(value) < len(activity.symbols):
                value = activity.symbols[int(value)]
        else:
            raw = await lines.ask(f"[{activity.remaining}s] press Enter> ", changed)
            value = None if raw is None else (raw if raw.lower() == "x" else "tap")
        if value is None or session.activity is not activity:
            break
        if value.lower() == "x":
            result = session.abort_activity()
            print(f"Stopped early with {result.score} points")
            break
        try:
            outcome = session.submit_activity_input(value)
        except ValueError as e:
            print(f"invalid input: {e}")
            continue
        print(f"score: {outcome.score}")


async def _break_menu(session: SessionController, lines: StdinLines, changed: asyncio.Event) -> None:
    offer = session.offer
    print(f"\n{offer.greeting}")
    if offer.last_result is not None:
        print(f"Final score: {offer.last_result.score} points")
    for i, choice in enumerate(ACTIVITY_CHOICES, start=1):
        print(f"  {i}) {choice.title}: {choice.description}")
    print("  r) Ready to continue reading")
    raw = await lines.ask("choice> ")
    if raw is None:
        return
    if raw.lower().startswith("r") or not raw.isdigit() or not (1 <= int(raw) <= len(ACTIVITY_CHOICES)):
        session.resume_reading()
        return
    session.select_activity(ACTIVITY_CHOICES[int(raw) - 1].activity_id)
    await _play(session, lines, changed)


def _reading_command(session: SessionController, cmd: str, stop: asyncio.Event) -> None:
    cmd = cmd.lower()
    if cmd == "q":
        stop.set()
    elif cmd == "m":
        session.request_manual_break()
    elif cmd == "n":
        print(f"page {session.next_page()}/{session.page_count}")
    elif cmd == "p":
        print(f"page {session.previous_page()}/{session.page_count}")
    elif cmd:
        print("commands: m = take a break, n/p = next/previous page, q = quit")


async def run(args, settings: Settings) -> None:
    content = Path(args.text).read_text(encoding="utf-8")
    options = settings.session_options(sample_interval_ms=args.interval_ms)
    session = SessionController(content, options=options, settings=settings)
    stop = asyncio.Event()
    changed = asyncio.Event()
    lines = StdinLines(stop)

    def _print(event):
        payload = dict(event.payload)
        if event.name == ev.EMOTION_UPDATED:
            payload.pop("weights", None)
            payload["emoji"] = EMOJI[Emotion(payload["dominant"])]
        print(json.dumps({"event": event.name, **payload}, ensure_ascii=False))
        if event.name in (ev.BREAK_OFFERED, ev.ACTIVITY_COMPLETED, ev.SESSION_CLOSED):
            changed.set()

    for name in ev.EVENT_NAMES:
        session.subscribe(name, _print)

    print(f"Reading {args.text}: {session.page_count} pages")
    try:
        await session.enable_monitoring()
    except DeviceUnavailable as e:
        print(f"Camera unavailable ({e}); continuing without monitoring. Type m for a break.")

    preview = asyncio.create_task(_preview(session, stop)) if args.preview else None
    try:
        while not stop.is_set():
            try:
                if session.state == SessionState.BREAK_OFFERED:
                    await _break_menu(session, lines, changed)
                    continue
                changed.clear()
                cmd = await lines.ask("> ", changed)
                if cmd is not None:
                    _reading_command(session, cmd, stop)
            except InvalidTransition as e:
                print(f"ignored: {e}")
    finally:
        stop.set()
        await session.close()
        if preview is not None:
            await preview


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--text", required=True, help="Path to the text/markdown to read")
    p.add_argument("--camera", type=int, default=None, help="Camera index (default CAMERA_INDEX)")
    p.add_argument("--classifier", choices=["deepface", "brightness"], default=None)
    p.add_argument("--interval-ms", type=int, default=None, help="Sampling interval, 300..500 ms")
    p.add_argument("--preview", action="store_true", help="Show the camera preview window")
    args = p.parse_args()

    overrides = {}
    if args.camera is not None:
        overrides["CAMERA_INDEX"] = args.camera
    if args.classifier is not None:
        overrides["CLASSIFIER"] = args.classifier
    settings = Settings(**overrides)
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
    try:
        asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
