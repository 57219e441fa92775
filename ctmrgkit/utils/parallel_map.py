from concurrent.futures import ThreadPoolExecutor

from typing import Callable, Iterable, List, Optional, TypeVar

from ctmrgkit import ctmrgkit_config

T_Input = TypeVar("T_Input")
T_Output = TypeVar("T_Output")


def parallel_map(
    func: Callable[[T_Input], T_Output],
    items: Iterable[T_Input],
    *,
    workers: Optional[int] = None,
) -> List[T_Output]:
    """
    Apply `func` to every element of `items` and return a new list with the
    results in input order.

    The elements must not depend on each other. With more than one worker
    the map is evaluated on a thread pool; jax releases the GIL during the
    numerical kernels.

    Args:
      func (:term:`callable`):
        Function applied to each element.
      items (:term:`iterable`):
        Input elements.
    Keyword args:
      workers (:obj:`int`, optional):
        Number of threads. Defaults to the config option
        :obj:`~ctmrgkit.config.CTMRGKit_Config.parallel_map_workers`.
    Returns:
      :obj:`list`:
        List with the results.
    """
    if workers is None:
        workers = ctmrgkit_config.parallel_map_workers

    items = list(items)

    if workers <= 1 or len(items) <= 1:
        return [func(i) for i in items]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(func, items))
