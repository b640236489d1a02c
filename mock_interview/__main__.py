#!/usr/bin/env python3
"""
Main entry point for the mock interview.
Allows running the package with: python -m mock_interview
"""
import asyncio
import os
import sys

from .config import get_config
from .errors import QuestionError
from .interview import (
    InterviewContext, Stage, build_orchestrator, render_report, render_turn_feedback
)
from .utils import setup_logging


def _ask(prompt: str):
    # input() blocks, so keep the loop free for background scoring and playback
    return asyncio.to_thread(input, prompt)


async def _answer_question(orchestrator) -> None:
    """Record (or type) an answer for the current question and let the user review it."""
    while True:
        typed = (await _ask("⏎  Press Enter to record your answer (or type it here): ")).strip()
        if typed:
            orchestrator.edit_transcript(typed)
            return

        started = await orchestrator.start_recording()
        if not started.ok:
            print(f"❌ {started.error.message}")
            print("   You can type your answer instead.")
            continue

        await _ask("🎙️  Recording... press Enter to stop ")
        print("🔍 Transcribing...")
        result = await orchestrator.stop_recording()
        if not result.ok:
            print(f"⚠️  {result.error.message}")
            continue

        print(f"💬 \"{result.value.text}\"")
        correction = (await _ask("   Press Enter to keep this answer, or type a corrected one: ")).strip()
        if correction:
            orchestrator.edit_transcript(correction)
        return


async def run_interview(orchestrator) -> int:
    started = await orchestrator.start()
    while not started.ok:
        print(f"❌ {started.error.message}")
        if (await _ask("   Retry? [Y/n] ")).strip().lower() == "n":
            return 1
        started = await orchestrator.start()

    while orchestrator.stage is Stage.ASKING_QUESTION:
        print(f"\n🤖 Question {len(orchestrator.history) + 1}/{orchestrator.max_turns}: "
              f"{orchestrator.current_question}")
        await _answer_question(orchestrator)

        if len(orchestrator.history) + 1 >= orchestrator.max_turns:
            print("📊 Scoring your answers...")
        submitted = await orchestrator.submit_answer()
        while not submitted.ok and isinstance(submitted.error, QuestionError):
            print(f"❌ {submitted.error.message}")
            await _ask("   Press Enter to retry ")
            submitted = await orchestrator.retry_question()
        if not submitted.ok:
            print(f"❌ {submitted.error.message}")
            return 1

    report = orchestrator.report
    if report is None:
        return 1

    print()
    for turn in report.turns:
        if turn.evaluation is not None:
            print(f"--- Question {turn.index + 1}: {turn.question}")
            print(render_turn_feedback(turn.evaluation))
            print()
    print("=" * 60)
    print(render_report(report))
    print("=" * 60)
    return 0


def main():
    """Command-line interface for the interview orchestrator."""

    question_source = "static" if "--static" in sys.argv else None
    scorer = "heuristic" if "--heuristic" in sys.argv else None

    # Load configuration from environment
    try:
        config = get_config(question_source=question_source, scorer=scorer)
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    if "--text" in sys.argv or "--no-tts" in sys.argv:
        config.enable_tts = False

    preferred_provider = None
    resume_text = ""
    for arg in sys.argv[1:]:
        if arg.startswith("--turns="):
            try:
                config.max_turns = max(1, int(arg.split("=", 1)[1]))
            except ValueError:
                print("❌ Invalid turns value. Use --turns=N with N >= 1")
                sys.exit(1)
        elif arg.startswith("--provider="):
            preferred_provider = arg.split("=", 1)[1].strip().lower()
        elif arg.startswith("--resume="):
            path = arg.split("=", 1)[1]
            try:
                with open(path, encoding="utf-8") as f:
                    resume_text = f.read()
            except OSError as e:
                print(f"❌ Could not read resume: {e}")
                sys.exit(1)

    log_file = setup_logging(config.log_file, config.log_level)

    if config.enable_tts:
        print("🔊 Voice Mode: questions will be read aloud (use --text to disable)")
    else:
        print("📝 Text Mode: questions are displayed as text only")
    print(f"🎯 Role: {config.target_role} | Questions: {config.max_turns} | "
          f"Source: {config.question_source} | Scoring: {config.scorer}")
    print(f"📄 Log: {os.path.abspath(log_file)}")

    orchestrator = build_orchestrator(
        config,
        context=InterviewContext(resume_text=resume_text, target_role=config.target_role),
        preferred_provider=preferred_provider,
    )

    async def _run() -> int:
        try:
            return await run_interview(orchestrator)
        finally:
            orchestrator.reset()

    try:
        code = asyncio.run(_run())
    except KeyboardInterrupt:
        print("\n👋 Interview cancelled")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
