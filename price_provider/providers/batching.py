"""
Adaptive batch splitting and retry for size-constrained upstreams.

Some upstreams accept a list of item names per call but reject batches above
an undocumented size. The engine discovers that limit empirically:

- oversize/invalid status (400, 413): bisect the batch and retry each half
  independently; a single name that still fails is skipped for good.
- transient status (429, 5xx): retry the same batch with exponential backoff
  until the retry budget is spent; only that sub-batch fails.
- anything else: fail the sub-batch immediately.

Independent batches run concurrently on a bounded worker pool. The first
error is kept but never cancels sibling batches; partial successes merge.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from .errors import ProviderError, UpstreamStatusError
from .resilience import RETRY, SPLIT, Deadline, RetryConfig

logger = logging.getLogger(__name__)

FetchBatch = Callable[[List[str], Deadline], List[Any]]


@dataclass
class BatchOutcome:
    """Merged result of one or more batch calls."""
    entries: List[Any] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)

    @property
    def first_error(self) -> Optional[Exception]:
        return self.errors[0] if self.errors else None

    def merge(self, other: "BatchOutcome") -> "BatchOutcome":
        self.entries.extend(other.entries)
        self.skipped.extend(other.skipped)
        self.errors.extend(other.errors)
        return self


def chunk_names(names: Sequence[str], size: int) -> List[List[str]]:
    """Split into consecutive chunks of at most `size`; size <= 0 means one chunk."""
    if size <= 0 or len(names) <= size:
        return [list(names)] if names else []
    return [list(names[i:i + size]) for i in range(0, len(names), size)]


class BatchEngine:
    """Runs size-bounded batch calls with recursive splitting and retry."""

    def __init__(
        self,
        max_items_per_request: int = 0,
        max_concurrency: int = 1,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self.max_items_per_request = max_items_per_request
        self.max_concurrency = max_concurrency if max_concurrency > 0 else 1
        self.retry_config = retry_config or RetryConfig()

    def fetch_split(
        self,
        fetch_batch: FetchBatch,
        names: Sequence[str],
        deadline: Optional[Deadline] = None,
    ) -> BatchOutcome:
        """
        Fetch one batch, splitting on oversize rejection and retrying on
        transient failure. Cancelled propagates; everything else is recorded
        in the returned outcome.
        """
        deadline = deadline or Deadline.never()
        if not names:
            return BatchOutcome()
        cfg = self.retry_config
        attempt = 0
        while True:
            deadline.check()
            try:
                return BatchOutcome(entries=list(fetch_batch(list(names), deadline)))
            except UpstreamStatusError as exc:
                action = cfg.classify(exc.status_code)
                if action == SPLIT:
                    if len(names) == 1:
                        logger.warning(
                            "Skipping %r: rejected with HTTP %d even as a single item",
                            names[0], exc.status_code,
                        )
                        return BatchOutcome(skipped=[names[0]])
                    mid = len(names) // 2
                    logger.debug(
                        "HTTP %d for batch of %d, splitting %d/%d",
                        exc.status_code, len(names), mid, len(names) - mid,
                    )
                    left = self.fetch_split(fetch_batch, names[:mid], deadline)
                    right = self.fetch_split(fetch_batch, names[mid:], deadline)
                    return left.merge(right)
                if action == RETRY and attempt < cfg.max_retries:
                    delay = cfg.delay_for(attempt)
                    attempt += 1
                    logger.debug(
                        "HTTP %d for batch of %d, retry %d/%d in %.2fs",
                        exc.status_code, len(names), attempt, cfg.max_retries, delay,
                    )
                    deadline.sleep(delay)
                    continue
                logger.warning(
                    "Batch of %d failed with HTTP %d after %d attempts",
                    len(names), exc.status_code, attempt + 1,
                )
                return BatchOutcome(errors=[exc])
            except ProviderError as exc:
                logger.warning("Batch of %d failed: %s", len(names), exc)
                return BatchOutcome(errors=[exc])

    def run(
        self,
        names: Sequence[str],
        fetch_batch: FetchBatch,
        deadline: Optional[Deadline] = None,
    ) -> BatchOutcome:
        """Chunk `names`, fetch every chunk on the worker pool, merge in chunk order."""
        deadline = deadline or Deadline.never()
        batches = chunk_names(names, self.max_items_per_request)
        if not batches:
            return BatchOutcome()
        if len(batches) == 1:
            return self.fetch_split(fetch_batch, batches[0], deadline)

        workers = min(self.max_concurrency, len(batches))
        outcome = BatchOutcome()
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch") as pool:
            futures = [
                pool.submit(self._run_one, fetch_batch, batch, deadline)
                for batch in batches
            ]
            for fut in futures:
                outcome.merge(fut.result())
        return outcome

    def _run_one(
        self, fetch_batch: FetchBatch, batch: List[str], deadline: Deadline
    ) -> BatchOutcome:
        # queued batches may start after the deadline already fired
        deadline.check()
        return self.fetch_split(fetch_batch, batch, deadline)
