"""Benchmark helper for suggestion recalculation latency."""
from __future__ import annotations

import argparse
import asyncio
import logging
import statistics
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Iterable, Sequence

from draftsync.editor.models import Suggestion
from draftsync.services.recalculation import SuggestionRecalculationService
from draftsync.services.settings import RecalculationConfig
from draftsync.utils.logging import configure_cli_logging

LOGGER = logging.getLogger("draftsync.benchmarks")


@dataclass(slots=True)
class BenchmarkResult:
    label: str
    path: Path
    size_bytes: int
    suggestions: int
    kept: int
    invalidated: int
    cold_ms: float
    warm_ms: float

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


def _default_cases() -> Sequence[tuple[str, Path]]:
    root = Path("test_data")
    return (
        ("War and Peace", root / "War and Peace.txt"),
        ("Twenty Thousand Leagues", root / "Twenty Thousand Leagues under the Sea.txt"),
    )


def _synthetic_suggestions(text: str, count: int) -> list[Suggestion]:
    """Anchor ``count`` suggestions on evenly spaced words of ``text``."""

    suggestions: list[Suggestion] = []
    if not text:
        return suggestions
    step = max(1, len(text) // max(1, count))
    for index in range(count):
        start = text.find(" ", index * step)
        if start < 0:
            break
        start += 1
        end = text.find(" ", start)
        if end <= start:
            continue
        suggestions.append(
            Suggestion(
                id=f"bench-{index}",
                content_id="benchmark",
                start_offset=start,
                end_offset=end,
                text_to_replace=text[start:end],
            )
        )
    return suggestions


def _mutate_text(text: str) -> str:
    middle = len(text) // 2
    return f"{text[:middle]} <!-- benchmark edit --> {text[middle:]}"


async def _timed_pass(
    service: SuggestionRecalculationService,
    text: str,
    updated: str,
    suggestions: list[Suggestion],
) -> tuple[float, int, int]:
    start = perf_counter()
    result = await service.perform_recalculation(text, updated, suggestions, "benchmark")
    runtime_ms = (perf_counter() - start) * 1000
    return runtime_ms, len(result.updated_suggestions), len(result.invalidated_suggestions)


def run_benchmarks(cases: Iterable[tuple[str, Path]], *, suggestion_count: int) -> list[BenchmarkResult]:
    results: list[BenchmarkResult] = []
    for label, path in cases:
        text = path.read_text(encoding="utf-8")
        LOGGER.info("Benchmarking %s (%s)", label, path)
        updated = _mutate_text(text)
        suggestions = _synthetic_suggestions(text, suggestion_count)
        service = SuggestionRecalculationService(RecalculationConfig(enable_new_suggestion_requests=False))
        cold_ms, kept, invalidated = asyncio.run(_timed_pass(service, text, updated, suggestions))
        warm_ms, _, _ = asyncio.run(_timed_pass(service, text, updated, suggestions))
        LOGGER.info("%s: cold %.2f ms, warm %.2f ms", label, cold_ms, warm_ms)
        results.append(
            BenchmarkResult(
                label=label,
                path=path,
                size_bytes=len(text.encode("utf-8")),
                suggestions=len(suggestions),
                kept=kept,
                invalidated=invalidated,
                cold_ms=cold_ms,
                warm_ms=warm_ms,
            )
        )
    return results


def main() -> None:
    parser = argparse.ArgumentParser(description="Measure suggestion recalculation latency on large fixtures.")
    parser.add_argument(
        "--case",
        action="append",
        metavar="LABEL=PATH",
        help="Optional case override; can be supplied multiple times.",
    )
    parser.add_argument("--suggestions", type=int, default=200, help="Synthetic suggestions per document.")
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON results.")
    parser.add_argument("--debug", action="store_true", help="Log debug output to stderr and the log file.")
    parser.add_argument("--log-dir", type=Path, help="Write draftsync.log to this directory.")
    args = parser.parse_args()
    configure_cli_logging(debug=args.debug, log_dir=args.log_dir)

    if args.case:
        cases: list[tuple[str, Path]] = []
        for raw in args.case:
            if "=" not in raw:
                parser.error(f"Invalid --case '{raw}'. Expected LABEL=PATH format.")
            label, value = raw.split("=", 1)
            cases.append((label.strip(), Path(value).expanduser()))
    else:
        cases = list(_default_cases())

    results = run_benchmarks(cases, suggestion_count=max(1, args.suggestions))

    if args.json:
        import json

        payload = [
            {
                "label": result.label,
                "path": str(result.path),
                "size_mb": result.size_mb,
                "suggestions": result.suggestions,
                "kept": result.kept,
                "invalidated": result.invalidated,
                "cold_ms": result.cold_ms,
                "warm_ms": result.warm_ms,
            }
            for result in results
        ]
        print(json.dumps(payload, indent=2))
        return

    if not results:
        return
    max_label = max(len(result.label) for result in results)
    header = f"{'Document':<{max_label}}  Size (MB)  Suggestions  Kept  Invalidated  Cold (ms)  Warm (ms)"
    print(header)
    print("-" * len(header))
    for result in results:
        print(
            f"{result.label:<{max_label}}  "
            f"{result.size_mb:>8.2f}  "
            f"{result.suggestions:>11,}  "
            f"{result.kept:>4,}  "
            f"{result.invalidated:>11,}  "
            f"{result.cold_ms:>9.2f}  "
            f"{result.warm_ms:>9.2f}"
        )

    runtimes = [result.cold_ms for result in results]
    print()
    print(
        "Recalculation runtime stats → min: "
        f"{min(runtimes):.2f} ms · median: {statistics.median(runtimes):.2f} ms · max: {max(runtimes):.2f} ms"
    )


if __name__ == "__main__":
    main()
