from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, List, Sequence

from mcdex_deployment.constants import DEFAULT_BATCH_SIZE


def _chunks(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def run_in_batches(calls: Sequence[Callable[[], Any]], batch_size: int = DEFAULT_BATCH_SIZE) -> List[Any]:
    """
    Runs read-only calls concurrently, at most batch_size at a time.
    Each batch finishes completely before the next one starts; if any call of a batch
    fails, its error is raised once the whole batch is done and no later batch runs.
    Results are returned in call order.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    results = list()
    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for batch in _chunks(list(calls), batch_size):
            futures = [executor.submit(call) for call in batch]
            wait(futures)
            for future in futures:
                error = future.exception()
                if error is not None:
                    raise error
            results.extend(future.result() for future in futures)
    return results
