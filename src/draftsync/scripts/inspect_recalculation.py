"""CLI helper to inspect how an edit moves or invalidates suggestions."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from ..editor.content_diff import summarize_changes
from ..editor.models import Suggestion
from ..services.recalculation import SuggestionRecalculationService
from ..services.settings import RecalculationConfig
from ..utils.logging import configure_cli_logging

LOGGER = logging.getLogger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate suggestion positions between two document versions.")
    parser.add_argument("old", type=Path, help="File containing the content the suggestions were computed for.")
    parser.add_argument("new", type=Path, help="File containing the edited content.")
    parser.add_argument(
        "--suggestions",
        type=Path,
        help="JSON file with a list of suggestion records (or an object with a 'suggestions' list).",
    )
    parser.add_argument("--post-id", default="", help="Post identifier reported in the output.")
    parser.add_argument("--no-invalidation", action="store_true", help="Keep suggestions that overlap an edit.")
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON results.")
    parser.add_argument("--debug", action="store_true", help="Log debug output to stderr and the log file.")
    parser.add_argument("--log-dir", type=Path, help="Write draftsync.log to this directory.")
    args = parser.parse_args(argv)

    configure_cli_logging(debug=args.debug, log_dir=args.log_dir)

    try:
        old_content = args.old.read_text(encoding="utf-8")
        new_content = args.new.read_text(encoding="utf-8")
        suggestions = _load_suggestions(args.suggestions)
    except (OSError, ValueError) as exc:
        LOGGER.debug("Failed to load inputs", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    LOGGER.info("Inspecting %s -> %s (%d suggestions)", args.old, args.new, len(suggestions))
    config = RecalculationConfig(
        enable_invalidation=not args.no_invalidation,
        enable_new_suggestion_requests=False,
    )
    service = SuggestionRecalculationService(config)
    diffs = service.track_content_change(old_content, new_content)
    deltas = service.calculate_position_deltas(old_content, diffs, suggestions)
    result = asyncio.run(service.perform_recalculation(old_content, new_content, suggestions, args.post_id))

    if args.json:
        payload: dict[str, Any] = {
            "post_id": args.post_id,
            "diffs": [diff.to_dict() for diff in diffs],
            "changed_ranges": [item.to_dict() for item in result.changed_ranges],
            "deltas": [
                {
                    "id": delta.suggestion_id,
                    "old": [delta.old_start_offset, delta.old_end_offset],
                    "new": [delta.new_start_offset, delta.new_end_offset],
                    "valid": delta.is_valid,
                }
                for delta in deltas
            ],
            "updated": [suggestion.to_payload() for suggestion in result.updated_suggestions],
            "invalidated": list(result.invalidated_suggestions),
        }
        print(json.dumps(payload, indent=2))
        return 0

    print(f"changes: {summarize_changes(diffs)}")
    ranges = ", ".join(f"[{item.start}, {item.end})" for item in result.changed_ranges) or "-"
    print(f"changed ranges: {ranges}")
    print(f"suggestions: {len(suggestions)}")
    print(f"kept: {len(result.updated_suggestions)}")
    print(f"invalidated: {len(result.invalidated_suggestions)}")
    for delta in deltas:
        status = "moved" if delta.requires_update else "unchanged"
        if not delta.is_valid:
            status = "invalid"
        print(
            f"  {delta.suggestion_id}: [{delta.old_start_offset}, {delta.old_end_offset})"
            f" -> [{delta.new_start_offset}, {delta.new_end_offset}) {status}"
        )
    return 0


def _load_suggestions(path: Path | None) -> list[Suggestion]:
    if path is None:
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("suggestions", [])
    if not isinstance(data, list):
        raise ValueError("Suggestions file must contain a list")
    return [Suggestion.from_payload(item) for item in data]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
