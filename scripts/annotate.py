"""
Print a calculator document with each line's result in a right-hand column.

    python scripts/annotate.py budget.calc
    python scripts/annotate.py budget.calc --rewrites budget.ai.json
    NEOCALC_PROVIDER=llamacpp python scripts/annotate.py budget.calc --analyze
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Mapping

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from calc_engine import AiRewrite, LineResult, format_value, parse_rewrites, reconcile_text

logger = logging.getLogger("annotate")


def render(text: str, results: Mapping[int, LineResult], width: int = 48) -> str:
    out = []
    for idx, line in enumerate(text.split("\n")):
        res = results.get(idx)
        if res is None:
            out.append(line)
            continue
        shown = format_value(res.value, res.format) if res.value is not None else f"[{res.kind}]"
        marker = "~" if res.source == "ai" else "="
        out.append(f"{line.ljust(width)} {marker} {shown}")
    return "\n".join(out)


def load_rewrites(path: str) -> Dict[int, AiRewrite]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_rewrites(json.load(f))


async def analyze(text: str, rewrites: Dict[int, AiRewrite]) -> Dict[int, LineResult]:
    from services.calc_api.config import get_settings
    from services.calc_api.providers import get_provider
    from services.calc_api.workflow import RewriteWorkflow

    settings = get_settings()
    workflow = RewriteWorkflow(get_provider(settings), settings)
    result = await workflow.run(text, ai_rewrites=rewrites)
    if not result.accepted:
        logger.warning(f"Model round not applied ({result.status}): {result.reason}")
    return result.results


def main():
    parser = argparse.ArgumentParser(description="Annotate a calculator document with line results")
    parser.add_argument("path", type=str, help="document file, or - for stdin")
    parser.add_argument("--rewrites", type=str, default=None, help="JSON map of line index -> rewrite")
    parser.add_argument("--analyze", action="store_true", help="run one rewrite round against the configured model")
    parser.add_argument("--width", type=int, default=48)
    parser.add_argument("--verbose", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    text = sys.stdin.read() if args.path == "-" else Path(args.path).read_text(encoding="utf-8")
    rewrites = load_rewrites(args.rewrites) if args.rewrites else {}

    if args.analyze:
        results = asyncio.run(analyze(text, rewrites))
    else:
        results = reconcile_text(text, rewrites)
    print(render(text, results, width=args.width))


if __name__ == "__main__":
    main()
