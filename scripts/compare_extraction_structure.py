#!/usr/bin/env python3
"""
Compare the structure of report extractions across a set of sample reports.

Runs the extraction client over every ``.md``/``.txt`` report in a directory,
saves each result as JSON, then reports, per file, the key paths missing
relative to the union of all results and the extra paths no other result
has. Root keys are compared first; deep key paths are compared only for
files with no missing root key.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Set, Tuple

from service_proxy.app.adapters.extraction_client import ExtractionClient
from shared.config import get_config
from shared.errors import ExtractionError


REPORT_SUFFIXES = (".md", ".txt")


def collect_key_paths(data: Any, prefix: str = "") -> Set[str]:
    """All dotted key paths of nested dicts (list elements are not descended)."""
    keys: Set[str] = set()
    if not isinstance(data, dict):
        return keys
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else key
        keys.add(path)
        keys |= collect_key_paths(value, path)
    return keys


def root_keys(data: Any) -> Set[str]:
    return set(data) if isinstance(data, dict) else set()


def _union_except(sets: List[Set[str]], skip: int) -> Set[str]:
    merged: Set[str] = set()
    for index, keys in enumerate(sets):
        if index != skip:
            merged |= keys
    return merged


def compare_results(results: List[Tuple[str, Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    """
    Per file: key paths other results have that it lacks (missing) and key
    paths no other result has (extra). A single result has nothing to differ from.
    """
    roots = [root_keys(data) for _, data in results]
    paths = [collect_key_paths(data) for _, data in results]

    report: Dict[str, Dict[str, Any]] = {}
    for index, (name, _) in enumerate(results):
        if len(results) == 1:
            report[name] = {"level": "deep", "missing": [], "extra": []}
            continue

        other_roots = _union_except(roots, index)
        missing_roots = sorted(other_roots - roots[index])
        if missing_roots:
            report[name] = {
                "level": "root",
                "missing": missing_roots,
                "extra": sorted(roots[index] - other_roots),
            }
            continue

        other_paths = _union_except(paths, index)
        report[name] = {
            "level": "deep",
            "missing": sorted(other_paths - paths[index]),
            "extra": sorted(paths[index] - other_paths),
        }
    return report


def print_report(report: Dict[str, Dict[str, Any]]) -> None:
    for name, entry in report.items():
        level = entry["level"]
        print(f"\n===== Comparison report for: {name} =====")
        if entry["missing"]:
            print(f"Missing {level} keys:")
            for key in entry["missing"]:
                print(f"   - {key}")
        if entry["extra"]:
            print(f"Extra {level} keys:")
            for key in entry["extra"]:
                print(f"   - {key}")
        if not entry["missing"] and not entry["extra"]:
            print("All keys present.")


async def extract_reports(reports_dir: Path, output_dir: Path, delay: float) -> List[Tuple[str, Dict[str, Any]]]:
    """Extract every report in ``reports_dir`` and save the JSON results."""
    config = get_config("proxy", 8000)
    client = ExtractionClient(
        config.llm_api_url,
        config.llm_api_key,
        config.llm_model,
        max_tokens=config.llm_max_tokens,
        timeout=config.llm_timeout,
    )
    output_dir.mkdir(parents=True, exist_ok=True)

    files = sorted(path for path in reports_dir.iterdir() if path.suffix.lower() in REPORT_SUFFIXES)
    results = []
    try:
        for index, path in enumerate(files):
            data = await client.extract(path.read_text(encoding="utf-8"))
            results.append((path.name, data))
            target = output_dir / f"{path.stem}.json"
            target.write_text(json.dumps(data, indent=2))
            print(f"Processed {path.name}: {len(collect_key_paths(data))} keys, saved {target}")
            if delay and index < len(files) - 1:
                # Stay under the extraction backend's rate limit
                await asyncio.sleep(delay)
    finally:
        await client.close()
    return results


def load_saved_results(output_dir: Path) -> List[Tuple[str, Dict[str, Any]]]:
    return [
        (path.name, json.loads(path.read_text(encoding="utf-8")))
        for path in sorted(output_dir.glob("*.json"))
    ]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compare report extraction structure across sample reports.")
    parser.add_argument("--reports-dir", type=Path, required=True, help="Directory of .md/.txt reports")
    parser.add_argument("--output-dir", type=Path, default=None, help="Where JSON results go (default: <reports-dir>/json)")
    parser.add_argument("--skip-llm", action="store_true", help="Compare previously saved JSON results only")
    parser.add_argument("--delay", type=float, default=15.0, help="Seconds to wait between extraction calls")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    output_dir = args.output_dir or args.reports_dir / "json"

    try:
        if args.skip_llm:
            results = load_saved_results(output_dir)
        else:
            results = asyncio.run(extract_reports(args.reports_dir, output_dir, args.delay))
    except KeyboardInterrupt:
        return 130
    except (ExtractionError, OSError, ValueError) as exc:
        print(f"[extraction-compare] failed: {exc}", file=sys.stderr)
        return 1

    if not results:
        print("[extraction-compare] no results to compare", file=sys.stderr)
        return 1

    print_report(compare_results(results))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
