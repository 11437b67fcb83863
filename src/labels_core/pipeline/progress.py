import inspect
from typing import Awaitable, Callable, Optional, Union

from labels_core.domain.results import SyncProgress

ProgressCallback = Callable[[SyncProgress], Union[None, Awaitable[None]]]


async def emit_progress(on_progress: Optional[ProgressCallback], phase: str, current: int, total: int,
                        current_cart_id: Optional[str] = None) -> None:
    """
    调用进度回调，支持普通函数和协程函数

    Args:
        on_progress (Optional[ProgressCallback]): 回调，为None时不做任何事
        phase (str): 阶段名
        current (int): 当前进度
        total (int): 总数
        current_cart_id (Optional[str]): 当前卡带ID
    """
    if on_progress is None:
        return
    result = on_progress(SyncProgress(phase=phase, current=current, total=total, current_cart_id=current_cart_id))
    if inspect.isawaitable(result):
        await result
