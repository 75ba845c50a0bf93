"""
Row iterators over offline store query results.

Iterators are lazy, forward-only and single-pass. next() advances and
returns False at the end of the stream or on failure; err() tells the two
apart. The cursor is released as soon as next() returns False.

    it = store.get_training_set(training_set_id)
    while it.next():
        train(it.features(), it.label())
    if it.err():
        raise it.err()

They also support plain iteration, which raises the failure instead:

    for features, label in store.get_training_set(training_set_id):
        ...
"""

import logging
from datetime import timezone
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from offline_store import codec
from offline_store.connection import CursorStream
from offline_store.metrics import ROWS_STREAMED
from offline_store.resources import ResourceRecord

logger = logging.getLogger(__name__)


class RowIterator:
    """Shared cursor handling for the feature and training-set iterators."""

    kind = "rows"

    def __init__(self, stream: CursorStream):
        self._stream = stream
        self._err: Optional[Exception] = None
        self._done = False

    def _decode(self, row: Sequence[Any]) -> None:
        raise NotImplementedError

    def _reset(self) -> None:
        raise NotImplementedError

    def next(self) -> bool:
        if self._done:
            return False
        try:
            row = self._stream.fetch()
            if row is None:
                self.close()
                return False
            self._decode(row)
        except Exception as e:
            logger.error("%s iterator failed: %s", self.kind, e)
            self._err = e
            self.close()
            return False
        ROWS_STREAMED.labels(iterator=self.kind).inc()
        return True

    def err(self) -> Optional[Exception]:
        return self._err

    def close(self) -> None:
        """Release the cursor. Safe to call more than once."""
        if not self._done:
            self._done = True
            self._reset()
        self._stream.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _current(self) -> Any:
        raise NotImplementedError

    def __iter__(self) -> Iterator[Any]:
        while self.next():
            yield self._current()
        if self._err is not None:
            raise self._err


class FeatureIterator(RowIterator):
    """Iterates (entity, value, ts) rows as ResourceRecords."""

    kind = "feature"

    def __init__(self, stream: CursorStream):
        super().__init__(stream)
        self._value: Optional[ResourceRecord] = None

    def _decode(self, row: Sequence[Any]) -> None:
        entity, value, ts = row
        self._value = ResourceRecord(
            entity=entity,
            value=codec.decode(value),
            ts=ts.astimezone(timezone.utc),
        )

    def _reset(self) -> None:
        self._value = None

    def value(self) -> Optional[ResourceRecord]:
        return self._value

    _current = value


class TrainingSetIterator(RowIterator):
    """
    Iterates training-set rows. Every column but the last is a feature;
    the last is the label. Missing feature values come back as None.
    """

    kind = "training_set"

    def __init__(self, stream: CursorStream, columns: Sequence[str] = ()):
        super().__init__(stream)
        self._columns = list(columns)
        self._features: Optional[List[Any]] = None
        self._label: Any = None

    @property
    def columns(self) -> List[str]:
        """Feature column names, in row order."""
        return self._columns[:-1]

    def _decode(self, row: Sequence[Any]) -> None:
        values = [codec.decode(v) for v in row]
        self._features = values[:-1]
        self._label = values[-1]

    def _reset(self) -> None:
        self._features = None
        self._label = None

    def features(self) -> Optional[List[Any]]:
        return self._features

    def label(self) -> Any:
        return self._label

    def _current(self) -> Tuple[List[Any], Any]:
        return self._features, self._label
