# src/daily_csv/fetcher.py

"""
Bounded-concurrency download of many S3 objects.
"""

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Sequence

from .clients import S3Client

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


def fetch_all(
    s3_client: S3Client,
    bucket: str,
    keys: Sequence[str],
    concurrency_limit: int = DEFAULT_CONCURRENCY,
) -> list[bytes]:
    """
    Fetches the body of every key in *keys* with at most *concurrency_limit*
    requests in flight, returning the bodies in the same order as *keys*.

    On the first failed fetch all queued fetches are cancelled and the error
    is raised; fetches already running are left to finish but their results
    are discarded.
    """
    if concurrency_limit < 1:
        raise ValueError("concurrency_limit must be at least 1")
    if not keys:
        return []

    workers = min(concurrency_limit, len(keys))
    logger.debug(
        f"Fetching {len(keys)} objects with {workers} workers.",
        extra={"bucket": bucket, "concurrency_limit": concurrency_limit},
    )

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="s3-fetch")
    try:
        futures: list[Future[bytes]] = [
            executor.submit(s3_client.get_object_bytes, bucket, key) for key in keys
        ]
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)

        for index, future in enumerate(futures):
            if future in done and future.exception() is not None:
                for pending in not_done:
                    pending.cancel()
                logger.warning(
                    "Fetch failed; abandoning remaining downloads.",
                    extra={
                        "bucket": bucket,
                        "key": keys[index],
                        "cancelled": sum(1 for f in not_done if f.cancelled()),
                    },
                )
                raise future.exception()  # type: ignore[misc]

        return [future.result() for future in futures]
    finally:
        executor.shutdown(wait=True, cancel_futures=True)
