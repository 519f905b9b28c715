"""Logging for flywheel runs: one readable line per event, extras as JSON."""

import json
import logging
import sys

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


class JSONExtrasFormatter(logging.Formatter):
    """``timestamp | LEVEL | logger | message {extras}``."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        line = (
            f"{self.formatTime(record, self.datefmt)} | {record.levelname:<8} | "
            f"{record.name} | {record.message}"
        )

        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if extras:
            try:
                line = f"{line} {json.dumps(extras, default=str, ensure_ascii=False)}"
            except ValueError:
                # Circular containers in an extra value
                line = f"{line} {extras!r}"

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line = f"{line}\n{record.exc_text}"
        return line


def setup_logging(level: int = logging.INFO) -> None:
    """Send ``metagen.*`` records to stdout. Later calls only change the level."""
    logger = logging.getLogger("metagen")
    logger.setLevel(level)
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONExtrasFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    logger.propagate = False
