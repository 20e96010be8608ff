"""
wikigate smoke entry point.

Runs one search (and fetches the top hit) through a fresh service context,
then prints the monitoring dashboard.

    python main.py "alan turing" [lang]
"""

import asyncio
import sys

from loguru import logger

from wikigate.context import create_context
from wikigate.services.errors import ServiceError
from wikigate.settings import Settings


async def main(query: str, lang: str | None = None) -> int:
    settings = Settings.from_env()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())

    logger.info("Starting wikigate...")
    async with create_context(settings) as ctx:
        try:
            response = await ctx.wikipedia.search(query, lang=lang, limit=5)
            for hit in response.results:
                logger.info(f"{hit.pageid}: {hit.title}")

            if response.results:
                summary = await ctx.wikipedia.get_page_summary(
                    response.results[0].title, lang=lang
                )
                if summary:
                    print(summary.extract)

        except ServiceError as e:
            logger.error(f"Lookup failed ({e.kind.value}): {e}")
            return 1

        finally:
            print(ctx.monitoring.get_dashboard_data().model_dump_json(indent=2))

    logger.info("wikigate stopped")
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)))
