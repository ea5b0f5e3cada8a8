"""Reshuffle the answer options of every stored question.

Usage: python -m recallbot.tools.reshuffle_options [--no-render] [--seed N]

Stop the bot first: the batch expects to be the only writer of option order.
"""
import argparse
import asyncio
import logging
import random

from recallbot.config import load_settings
from recallbot.db import make_engine, make_sessionmaker
from recallbot.debias import reshuffle_all
from recallbot.images import ImageStore
from recallbot.renderer import QuestionRenderer


async def main(render: bool, seed: int | None) -> int:
    settings = load_settings()
    engine = make_engine(settings)
    Session = make_sessionmaker(engine)
    try:
        report = await reshuffle_all(
            Session,
            renderer=QuestionRenderer(settings.font_path) if render else None,
            image_store=ImageStore(settings.image_storage_root),
            rng=random.Random(seed) if seed is not None else None,
        )
    finally:
        await engine.dispose()
    print(
        f"shuffled={report.shuffled} total={report.total} "
        f"skipped={len(report.skipped)} render_failed={len(report.render_failed)}"
    )
    return 1 if report.skipped else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="Reshuffle stored answer options.")
    parser.add_argument("--no-render", action="store_true", help="drop cached question images instead of regenerating them")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(not args.no_render, args.seed)))
