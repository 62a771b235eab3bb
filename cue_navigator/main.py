"""
Command line entry point for the cue card navigator.

Offline tools around live sessions: inspect the phrases derived from a
script and replay recorded performance logs into a session report.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .analytics.reporter import format_detailed_report, format_json_report
from .config import load_settings, SessionSettings
from .errors import CueNavigatorError
from .models import SegmentCard
from .phrases.extractor import build_cards
from .replay import load_replay_log, replay_session
from .sources import TextFileSegmentSource


def setup_logging(verbose: bool = False, quiet: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    if quiet and not verbose:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def load_cards(script: Path, overrides: Optional[Path] = None) -> List[SegmentCard]:
    source = TextFileSegmentSource(script, overrides)
    return build_cards(source.load_segments(), source.load_overrides())


def _load_settings(path: Optional[Path]) -> SessionSettings:
    if path is None:
        return SessionSettings()
    return load_settings(path)


def run_phrases(args: argparse.Namespace) -> int:
    """Print the anchor and exit phrases of every card."""
    cards = load_cards(args.script, args.overrides)
    for card in cards:
        marker = " (custom)" if card.has_custom_phrases else ""
        print(f"Card {card.index + 1} [{card.id}]{marker}")
        print(f"   Anchor: {' '.join(card.effective_anchor_phrase)}")
        print(f"   Exit:   {' '.join(card.effective_exit_phrase)}")
    return 0


def run_replay(args: argparse.Namespace) -> int:
    """Replay a performance log and print the session report."""
    logger = logging.getLogger(__name__)

    settings = _load_settings(args.settings)
    if args.exit_threshold is not None:
        settings.update_threshold("exit_threshold", args.exit_threshold)
    settings.validate()

    cards = load_cards(args.script, args.overrides)
    entries = load_replay_log(args.log)
    logger.info(f"Replaying {len(entries)} entries over {len(cards)} cards")

    report = replay_session(cards, settings, entries)
    if args.json:
        print(format_json_report(report))
    else:
        print(format_detailed_report(report))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cue-navigator",
        description="Cue card navigation tools: phrase inspection and performance replay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cue-navigator phrases --script setlist.txt
  cue-navigator replay --script setlist.txt --log rehearsal.jsonl
  cue-navigator replay --script setlist.txt --overrides phrases.json --log rehearsal.jsonl --json
        """
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    phrases = subparsers.add_parser("phrases", help="Show the phrases derived for each card")
    phrases.add_argument("--script", type=Path, required=True,
                         help="Script text file, segments separated by blank lines")
    phrases.add_argument("--overrides", type=Path, help="JSON file of custom phrases per segment id")
    phrases.set_defaults(func=run_phrases)

    replay = subparsers.add_parser("replay", help="Replay a JSON-lines performance log")
    replay.add_argument("--script", type=Path, required=True,
                        help="Script text file, segments separated by blank lines")
    replay.add_argument("--overrides", type=Path, help="JSON file of custom phrases per segment id")
    replay.add_argument("--log", type=Path, required=True, help="JSON-lines performance log")
    replay.add_argument("--settings", type=Path, help="JSON settings file")
    replay.add_argument("--exit-threshold", type=float, help="Override the exit threshold (0-1)")
    replay.add_argument("--json", action="store_true", help="Print the report as JSON")
    replay.set_defaults(func=run_replay)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    # JSON output goes to stdout, keep it parseable
    setup_logging(args.verbose, quiet=getattr(args, "json", False))

    try:
        return args.func(args)
    except CueNavigatorError as e:
        error = e.processing_error
        print(f"❌ {error.message}: {error.details}")
        if error.suggested_actions:
            print("💡 Suggestions:")
            for action in error.suggested_actions:
                print(f"   • {action}")
        return 1
    except (OSError, ValueError) as e:
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
