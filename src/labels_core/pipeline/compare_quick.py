import asyncio
import time
from typing import Optional

from labels_core.domain.errors import LabelsDbError
from labels_core.domain.results import (
    PHASE_COMPARING,
    QuickCompareResult,
    REASON_ID_TABLE_MISMATCH,
    REASON_SIZE_MISMATCH,
    REASON_UNKNOWN,
)
from labels_core.format.labels.layout import Layout
from labels_core.pipeline.progress import ProgressCallback, emit_progress
from labels_core.utils.hashing import md5_hex
from labels_core.utils.io import SlotFile, file_size
from labels_core.utils.log import setup_logger

logger = setup_logger(__name__)

QUICK_STEPS = 2


class CompareQuick:
    """
    快速比较两个labels.db文件

    只读取文件大小和ID表。结论为identical时仅说明大小和ID顺序一致，
    图片内容仍可能不同，需要确定时使用CompareDetailed。
    任何IO错误都会被折叠成reason='unknown'的结果，不向上抛出。
    """

    def __init__(self, local_path: str, other_path: str, on_progress: Optional[ProgressCallback] = None):
        """
        初始化CompareQuick

        Args:
            local_path (str): 本地labels.db路径
            other_path (str): 另一份labels.db路径（如SD卡）
            on_progress (Optional[ProgressCallback]): 进度回调，按'大小'、'ID表'两步报告
        """
        self.local_path = local_path
        self.other_path = other_path
        self.on_progress = on_progress

    async def run(self) -> QuickCompareResult:
        """
        执行比较

        Returns:
            QuickCompareResult: 比较结果
        """
        start = time.perf_counter()

        try:
            return await self._compare(start)
        except (OSError, LabelsDbError) as e:
            logger.warning("quick compare of %s and %s failed: %s", self.local_path, self.other_path, e)
            return QuickCompareResult(
                identical=False,
                reason=REASON_UNKNOWN,
                duration_ms=_elapsed_ms(start),
            )

    async def _compare(self, start: float) -> QuickCompareResult:
        # 第一步：比较文件大小
        await emit_progress(self.on_progress, PHASE_COMPARING, 0, QUICK_STEPS)
        local_size, other_size = await asyncio.gather(
            file_size(self.local_path),
            file_size(self.other_path),
        )

        counts = dict(
            local_size=local_size,
            other_size=other_size,
            local_entry_count=Layout.physical_entry_count(local_size),
            other_entry_count=Layout.physical_entry_count(other_size),
        )

        if local_size != other_size:
            logger.debug("size mismatch: %d != %d", local_size, other_size)
            return QuickCompareResult(
                identical=False,
                reason=REASON_SIZE_MISMATCH,
                duration_ms=_elapsed_ms(start),
                **counts,
            )

        await emit_progress(self.on_progress, PHASE_COMPARING, 1, QUICK_STEPS)

        # 第二步：比较ID表哈希
        local_hash, other_hash = await asyncio.gather(
            hash_id_table(self.local_path),
            hash_id_table(self.other_path),
        )
        await emit_progress(self.on_progress, PHASE_COMPARING, QUICK_STEPS, QUICK_STEPS)

        if local_hash != other_hash:
            logger.debug("id table mismatch: %s != %s", local_hash, other_hash)
            return QuickCompareResult(
                identical=False,
                reason=REASON_ID_TABLE_MISMATCH,
                duration_ms=_elapsed_ms(start),
                **counts,
            )

        return QuickCompareResult(
            identical=True,
            duration_ms=_elapsed_ms(start),
            **counts,
        )


async def hash_id_table(path: str) -> str:
    """
    计算ID表区域的MD5（按物理槽位数读取，包含哨兵之后的字）

    Args:
        path (str): 文件路径

    Returns:
        str: 十六进制摘要
    """
    async with SlotFile.open(path) as handle:
        size = Layout.id_table_size(handle.size)
        table_bytes = await handle.read_at(Layout.ID_TABLE_START, size) if size else b''
    return await asyncio.to_thread(md5_hex, table_bytes)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
