"""Command-line entry point: serve, analyze, scenarios, report, evals, practice."""

import argparse
import asyncio
import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from eq_coach.config import Config, setup_logging
from eq_coach.errors import CoachError
from eq_coach.models import MODES, AnalysisRequest
from eq_coach.report import ReportView, render_html, render_terminal
from eq_coach.scenarios import pick_scenario
from eq_coach.storage import ResultStore

logger = logging.getLogger(__name__)


def _find_scenario(scenarios, label: str):
    for s in scenarios:
        if s.label == label:
            return s
    return None


def _make_client(server: Optional[str]):
    from eq_coach.client import AnalysisClient, LocalAnalysisClient
    from eq_coach.main import build_services

    if server:
        return AnalysisClient(server)
    analysis, scenarios = build_services(Config)
    return LocalAnalysisClient(analysis, scenarios)


def cmd_serve(args) -> int:
    from eq_coach.run_server import main as run_server

    run_server(host=args.host, port=args.port, reload=args.reload)
    return 0


async def _analyze(args) -> int:
    client = _make_client(args.server)
    scenario = None
    if args.scenario:
        scenario = _find_scenario(await client.scenarios(args.mode), args.scenario)
        if scenario is None:
            print(f"Unknown scenario '{args.scenario}'", file=sys.stderr)
            return 2
    result = await client.analyze(AnalysisRequest(text=args.text, mode=args.mode, scenario=scenario))
    ResultStore(args.store).save(result)
    print(render_terminal(ReportView(result), color=sys.stdout.isatty()))
    return 0


async def _scenarios(args) -> int:
    client = _make_client(args.server)
    for s in await client.scenarios(args.mode):
        print(f"- {s.label}: {s.prompt}")
    return 0


async def _evals(args) -> int:
    from eq_coach.evals import run_evals, summarize, write_outcomes

    client = _make_client(args.server)
    outcomes = await run_evals(client, mode=args.mode, pause=args.pause)
    print(summarize(outcomes))
    if args.output:
        write_outcomes(outcomes, args.output)
        print(f"Results written to {args.output}")
    return 0 if all(o.passed for o in outcomes) else 1


def cmd_report(args) -> int:
    view = ReportView.from_store(ResultStore(args.store))
    if args.html:
        Path(args.html).write_text(render_html(view), encoding="utf-8")
        print(f"Report written to {args.html}")
    else:
        print(render_terminal(view, color=sys.stdout.isatty()))
    return 0


class EnterKeys:
    """
    One daemon thread reading stdin lines into the event loop, so a pending
    read never blocks exit and each Enter press is consumed exactly once.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.presses: "asyncio.Queue[str]" = asyncio.Queue()
        threading.Thread(target=self._reader, daemon=True).start()

    def _reader(self):
        for line in sys.stdin:
            self.loop.call_soon_threadsafe(self.presses.put_nowait, line)

    async def set_on_press(self, event: asyncio.Event, prompt: str) -> None:
        print(prompt, end="", flush=True)
        while not self.presses.empty():
            self.presses.get_nowait()
        await self.presses.get()
        event.set()


async def _practice(args) -> int:
    from eq_coach.audio import SoundDeviceMicrophone
    from eq_coach.recognizer import DeepgramRecognizer
    from eq_coach.session import SessionController, SessionState

    loop = asyncio.get_running_loop()
    client = _make_client(args.server)

    scenario = None
    if not args.no_scenario:
        scenario = pick_scenario(args.mode, pool=await client.scenarios(args.mode))
        print(f"\n场景：{scenario.label}\n{scenario.prompt}\n")

    device = int(args.device) if args.device and args.device.isdigit() else args.device
    live = bool(Config.DEEPGRAM_API_KEY)
    if not live:
        print("未配置 DEEPGRAM_API_KEY，录音结束后将上传音频进行识别。")

    done = asyncio.Event()

    def on_state(state):
        print(f"[{state.value}]")
        if state in (SessionState.IDLE, SessionState.COMPLETED):
            done.set()

    def on_transcript(acc):
        sys.stdout.write(f"\r{acc.text}{acc.interim}")
        sys.stdout.flush()

    controller = SessionController(
        args.mode,
        microphone_factory=lambda: SoundDeviceMicrophone(device=device),
        recognizer_factory=DeepgramRecognizer if live else None,
        submit=client.analyze,
        store=ResultStore(args.store),
        scenario=scenario,
        audio_fallback=args.audio_fallback or not live,
        on_notice=lambda level, message: print(f"\n[{level}] {message}"),
        on_state=on_state,
        on_transcript=on_transcript,
    )

    keys = EnterKeys(loop)
    async with controller:
        if args.think:
            skip = asyncio.Event()
            waiter = asyncio.create_task(
                keys.set_on_press(skip, f"思考时间 {controller.thinking_seconds}s，按回车直接开始录音…\n")
            )
            try:
                started = await controller.think(skip)
            finally:
                waiter.cancel()
        else:
            started = await controller.start()
        if not started:
            return 1

        while controller.state is SessionState.RECORDING:
            done.clear()
            waiter = asyncio.create_task(keys.set_on_press(done, "录音中，说完后按回车结束…\n"))
            try:
                result = await controller.record_until(done)
            finally:
                waiter.cancel()
            if result is not None:
                print(render_terminal(ReportView(result), color=sys.stdout.isatty()))
                return 0
    return 1


def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog="eq-coach", description="EQ communication coach")
    p.add_argument("--log-level", default=None)
    p.add_argument("--store", default=None, help="result file (default: RESULT_STORE_PATH)")
    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("serve", help="run the HTTP API")
    sp.add_argument("--host", default="127.0.0.1")
    sp.add_argument("--port", type=int, default=8010)
    sp.add_argument("--reload", action="store_true")

    sp = sub.add_parser("analyze", help="analyze one utterance")
    sp.add_argument("text")
    sp.add_argument("--mode", choices=MODES, default="work")
    sp.add_argument("--scenario", default=None, help="scenario label")
    sp.add_argument("--server", default=None, help="use a running server instead of in-process")

    sp = sub.add_parser("scenarios", help="list scenarios for a mode")
    sp.add_argument("--mode", choices=MODES, default="work")
    sp.add_argument("--server", default=None)

    sp = sub.add_parser("report", help="show the last stored analysis")
    sp.add_argument("--html", default=None, help="write an HTML report to this file")

    sp = sub.add_parser("evals", help="run the fixed quality cases and summarize")
    sp.add_argument("--mode", choices=MODES, default="work")
    sp.add_argument("--server", default=None)
    sp.add_argument("--pause", type=float, default=0.0, help="seconds between cases")
    sp.add_argument("--output", default=None, help="write per-case results as JSON")

    sp = sub.add_parser("practice", help="record one answer from the microphone and analyze it")
    sp.add_argument("--mode", choices=MODES, default="work")
    sp.add_argument("--server", default=None)
    sp.add_argument("--device", default=None)
    sp.add_argument("--think", action="store_true", help="start with the thinking countdown")
    sp.add_argument("--no-scenario", action="store_true")
    sp.add_argument("--audio-fallback", action="store_true",
                    help="upload the recording when live recognition heard nothing")

    args = p.parse_args(argv)
    setup_logging(args.log_level)

    try:
        if args.command == "serve":
            return cmd_serve(args)
        if args.command == "report":
            return cmd_report(args)
        if args.command == "analyze":
            return asyncio.run(_analyze(args))
        if args.command == "scenarios":
            return asyncio.run(_scenarios(args))
        if args.command == "evals":
            return asyncio.run(_evals(args))
        return asyncio.run(_practice(args))
    except CoachError as e:
        print(f"错误 ({e.code}): {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
