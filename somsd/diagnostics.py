import logging
from collections import Counter

from somsd.errors import ConfigurationError

TRUNCATION_NOTE = "These warnings occur more than {limit} times...truncating."


class Diagnostics:
    """Collects errors and advisory messages during parsing and validation.

    Messages are buffered and emitted in one go by :meth:`flush`, errors are
    turned into a single exception by :meth:`raise_if_errors`. Repeated
    warnings sharing a key are shown ``max_repeats`` times, followed by one
    truncation note; later occurrences are only counted.
    """

    def __init__(self, max_repeats: int = 10):
        self.max_repeats = max_repeats
        self.errors: list[str] = []
        self.messages: list[str] = []
        self.counts: Counter[str] = Counter()

    def error(self, msg: str):
        self.errors.append(msg)

    def message(self, msg: str):
        self.messages.append(msg)

    def warn(self, key: str, msg: str):
        self.counts[key] += 1
        n = self.counts[key]
        if n <= self.max_repeats:
            self.messages.append(msg)
        elif n == self.max_repeats + 1:
            self.messages.append(TRUNCATION_NOTE.format(limit=self.max_repeats))

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def flush(self, logger: logging.Logger):
        for msg in self.messages:
            logger.warning(msg)
        for msg in self.errors:
            logger.error(msg)
        self.messages.clear()

    def raise_if_errors(self, exc_type: type[Exception] = ConfigurationError):
        if not self.errors:
            return
        msg = "; ".join(self.errors)
        self.errors.clear()
        raise exc_type(msg)
