"""
CLI entry point for dialogcast
"""
import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from dialogcast.config.settings import PipelineConfig, load_env_file, resolve_relative_path
from dialogcast.errors import DialogcastError
from dialogcast.infra.storage import LocalStorage
from dialogcast.pipeline.dialogue import DialogueGenerator, publish
from dialogcast.pipeline.processors.parse import parse_dialogue
from dialogcast.pipeline.processors.subtitle import speaker_timeline
from dialogcast.pipeline.processors.timing import AnalysisCache, OpenAIDialogueAnalyzer
from dialogcast.pipeline.processors.tts import ElevenLabsSynthesizer
from dialogcast.schema.types import Speaker
from dialogcast.utils.logger import error, info, success


def load_speakers(path: str) -> List[Speaker]:
    """
    读取 speaker registry JSON：
    [{"name": "adam", "voice_id": "...", "voice_settings": {...}}, ...]
    """
    data = json.loads(resolve_relative_path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("speakers", [])
    return [Speaker.from_dict(item) for item in data]


def _build_generator(args, config: PipelineConfig) -> DialogueGenerator:
    speakers = load_speakers(args.speakers)
    synthesizer = ElevenLabsSynthesizer(
        base_url=config.elevenlabs_base_url,
        model_id=config.elevenlabs_model,
        sample_rate=config.sample_rate,
        channels=config.channels,
        timeout=config.elevenlabs_timeout,
        retry_policy=config.retry_policy(),
    )
    analyzer = None
    if config.analysis_enabled:
        analyzer = OpenAIDialogueAnalyzer(
            model=config.openai_model,
            temperature=config.openai_temperature,
            retry_policy=config.retry_policy(),
            cache=AnalysisCache(ttl=config.analysis_cache_ttl),
        )
    return DialogueGenerator(speakers, synthesizer, analyzer=analyzer, config=config)


def cmd_run(args) -> None:
    overrides = {}
    if args.seed is not None:
        overrides["timing_seed"] = args.seed
    if args.no_analysis:
        overrides["analysis_enabled"] = False
    if args.workers is not None:
        overrides["synthesis_max_workers"] = args.workers
    config = PipelineConfig.from_env(**overrides)

    script = Path(args.script).read_text(encoding="utf-8")
    generator = _build_generator(args, config)
    result = generator.run(script)

    storage = LocalStorage(args.out)
    urls = publish(result, storage, prefix=args.prefix or "")
    for name, url in urls.items():
        info(f"{name}: {url}")
    if args.report:
        for name in result.dialogue_transcript.speakers:
            print(speaker_timeline(result.dialogue_transcript, name))
    if result.skipped_turns:
        error(f"skipped turns: {result.skipped_turns}")
    success(f"Dialogue generated: {result.mixed.duration:.2f}s")


def cmd_parse(args) -> None:
    speakers = load_speakers(args.speakers)
    script = Path(args.script).read_text(encoding="utf-8")
    for turn in parse_dialogue(script, speakers):
        mods = turn.modifiers
        breaks = ", ".join(f"{b}s@{o}" for b, o in zip(mods.breaks, mods.break_offsets))
        print(
            f"{turn.order_index:3d} {turn.speaker_name} "
            f"[{mods.emotion.value}/{mods.pace.value}{'; ' + breaks if breaks else ''}] {turn.text}"
        )


def cmd_voices(args) -> None:
    synthesizer = ElevenLabsSynthesizer()
    for voice in synthesizer.list_voices():
        print(f"{voice['voice_id']}\t{voice['name']}\t{voice.get('category') or ''}")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Multi-speaker synthetic podcast dialogue generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dialogcast parse script.txt --speakers speakers.json
  dialogcast run script.txt --speakers speakers.json --out runs/ep01
  dialogcast run script.txt --speakers speakers.json --out runs/ep01 --seed 7 --no-analysis
  dialogcast voices
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command")

    run_parser = subparsers.add_parser("run", help="Generate audio + captions for a script")
    run_parser.add_argument("script", type=str, help="Bracket-tagged script file")
    run_parser.add_argument("--speakers", type=str, required=True, help="Speaker registry JSON")
    run_parser.add_argument("--out", type=str, default="runs", help="Output directory (default: runs)")
    run_parser.add_argument("--prefix", type=str, help="Key prefix inside the output directory")
    run_parser.add_argument("--seed", type=int, help="Seed for pause jitter (reproducible timing)")
    run_parser.add_argument("--workers", type=int, help="Concurrent synthesis requests")
    run_parser.add_argument("--no-analysis", action="store_true", help="Skip conversational analysis")
    run_parser.add_argument("--report", action="store_true", help="Print per-speaker timeline reports")

    parse_parser = subparsers.add_parser("parse", help="Parse a script and print its turns")
    parse_parser.add_argument("script", type=str, help="Bracket-tagged script file")
    parse_parser.add_argument("--speakers", type=str, required=True, help="Speaker registry JSON")

    subparsers.add_parser("voices", help="List available ElevenLabs voices")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    load_env_file()

    handlers = {"run": cmd_run, "parse": cmd_parse, "voices": cmd_voices}
    try:
        handlers[args.command](args)
    except DialogcastError as e:
        where = f" (stage={e.stage}, index={e.index})" if e.stage else ""
        error(f"{args.command} failed{where}: {e.message}")
        sys.exit(1)
    except (OSError, ValueError) as e:
        error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
