from __future__ import annotations

import logging


def get_logger(name: str = "news_archiver", level: int | str = logging.INFO) -> logging.Logger:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
    else:
        logging.getLogger().setLevel(level)
    return logging.getLogger(name)
