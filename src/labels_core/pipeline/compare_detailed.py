import asyncio
import time
from typing import List, Optional, Tuple

from labels_core.domain.errors import OperationCancelled
from labels_core.domain.results import (
    CompareBreakdown,
    DetailedCompareResult,
    PHASE_ID_COMPARE,
    PHASE_IMAGE_COMPARE,
    PHASE_INDEX_READ,
)
from labels_core.format.labels.id_table import IdTable, read_id_table
from labels_core.format.labels.layout import Layout, cart_id_to_hex
from labels_core.pipeline.progress import ProgressCallback, emit_progress
from labels_core.utils.hashing import md5_hex
from labels_core.utils.io import SlotFile
from labels_core.utils.log import setup_logger

logger = setup_logger(__name__)

# 同一批次内并发比较的条目数
DEFAULT_BATCH_SIZE = 50

# 抽样哈希：图片数据开头和结尾各取的字节数
SAMPLE_SIZE = 1024


async def hash_slot_sampled(handle: SlotFile, index: int) -> str:
    """
    抽样哈希：图片数据的前1KB + 最后1KB（不含padding）

    中间区域的修改不会被发现，需要确定时使用hash_slot_full。

    Args:
        handle (SlotFile): 已打开的文件
        index (int): 槽位索引

    Returns:
        str: 十六进制摘要
    """
    offset = Layout.slot_offset(index)
    head, tail = await asyncio.gather(
        handle.read_at(offset, SAMPLE_SIZE),
        handle.read_at(offset + Layout.IMAGE_DATA_SIZE - SAMPLE_SIZE, SAMPLE_SIZE),
    )
    return await asyncio.to_thread(md5_hex, head, tail)


async def hash_slot_full(handle: SlotFile, index: int) -> str:
    """
    完整哈希：整个图片数据（不含padding）

    Args:
        handle (SlotFile): 已打开的文件
        index (int): 槽位索引

    Returns:
        str: 十六进制摘要
    """
    data = await handle.read_at(Layout.slot_offset(index), Layout.IMAGE_DATA_SIZE)
    return await asyncio.to_thread(md5_hex, data)


def partition_ids(local: IdTable, other: IdTable) -> Tuple[List[int], List[int], List[Tuple[int, int, int]]]:
    """
    将两份ID表划分为三组

    Args:
        local (IdTable): 本地ID表
        other (IdTable): 另一份ID表

    Returns:
        Tuple: (只在local, 只在other, [(cart_id, local_index, other_index)])
    """
    only_in_local = []
    in_both = []
    for cart_id, local_index in local.ids.items():
        other_index = other.slot_of(cart_id)
        if other_index is None:
            only_in_local.append(cart_id)
        else:
            in_both.append((cart_id, local_index, other_index))

    only_in_other = [cart_id for cart_id in other.ids if cart_id not in local]

    return only_in_local, only_in_other, in_both


class CompareDetailed:
    """
    详细比较两个labels.db文件

    给出只存在于一侧的卡带ID，以及两侧都有但图片不同的卡带ID。
    IO错误直接向上抛出。
    """

    def __init__(self, local_path: str, other_path: str, full_hash: bool = False,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 on_progress: Optional[ProgressCallback] = None,
                 cancel_event: Optional[asyncio.Event] = None):
        """
        初始化CompareDetailed

        Args:
            local_path (str): 本地labels.db路径
            other_path (str): 另一份labels.db路径
            full_hash (bool): True时对整个图片数据做哈希，否则抽样
            batch_size (int): 每批并发比较的条目数
            on_progress (Optional[ProgressCallback]): 进度回调
            cancel_event (Optional[asyncio.Event]): 设置后在批次之间中止
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.local_path = local_path
        self.other_path = other_path
        self.full_hash = full_hash
        self.batch_size = batch_size
        self.on_progress = on_progress
        self.cancel_event = cancel_event

    async def run(self) -> DetailedCompareResult:
        """
        执行比较

        Returns:
            DetailedCompareResult: 比较结果
        """
        start = time.perf_counter()

        async with SlotFile.open(self.local_path) as local_handle, \
                SlotFile.open(self.other_path) as other_handle:

            # 第一步：读取两份ID表
            await emit_progress(self.on_progress, PHASE_INDEX_READ, 0, 2)
            phase_start = time.perf_counter()
            local_table, other_table = await asyncio.gather(
                read_id_table(local_handle),
                read_id_table(other_handle),
            )
            index_read_ms = _elapsed_ms(phase_start)
            await emit_progress(self.on_progress, PHASE_INDEX_READ, 2, 2)

            # 第二步：比较ID集合
            phase_start = time.perf_counter()
            only_in_local, only_in_other, in_both = partition_ids(local_table, other_table)
            id_compare_ms = _elapsed_ms(phase_start)
            await emit_progress(self.on_progress, PHASE_ID_COMPARE, len(in_both), len(in_both))

            # 第三步：比较两侧都有的条目的图片数据
            phase_start = time.perf_counter()
            modified = await self._compare_images(local_handle, other_handle, in_both)
            image_compare_ms = _elapsed_ms(phase_start)

        identical = not only_in_local and not only_in_other and not modified

        result = DetailedCompareResult(
            identical=identical,
            only_in_local=tuple(cart_id_to_hex(c) for c in only_in_local),
            only_in_other=tuple(cart_id_to_hex(c) for c in only_in_other),
            modified=tuple(cart_id_to_hex(c) for c in modified),
            total_compared=len(in_both),
            full_hash=self.full_hash,
            duration_ms=_elapsed_ms(start),
            breakdown=CompareBreakdown(
                index_read_ms=index_read_ms,
                id_compare_ms=id_compare_ms,
                image_compare_ms=image_compare_ms,
            ),
        )
        logger.info(
            "compared %s with %s: %d only local, %d only other, %d modified of %d (%s hash, %.1f ms)",
            self.local_path, self.other_path, len(result.only_in_local), len(result.only_in_other),
            len(result.modified), result.total_compared, 'full' if self.full_hash else 'sampled',
            result.duration_ms,
        )
        return result

    async def _compare_images(self, local_handle: SlotFile, other_handle: SlotFile,
                              in_both: List[Tuple[int, int, int]]) -> List[int]:
        hash_fn = hash_slot_full if self.full_hash else hash_slot_sampled

        async def compare_pair(local_index: int, other_index: int) -> bool:
            local_hash, other_hash = await asyncio.gather(
                hash_fn(local_handle, local_index),
                hash_fn(other_handle, other_index),
            )
            return local_hash == other_hash

        modified = []
        total = len(in_both)
        for i in range(0, total, self.batch_size):
            self._check_cancelled()
            batch = in_both[i:i + self.batch_size]

            # gather保持输入顺序
            results = await asyncio.gather(*(
                compare_pair(local_index, other_index)
                for _, local_index, other_index in batch
            ))

            for (cart_id, _, _), same in zip(batch, results):
                if not same:
                    modified.append(cart_id)

            await emit_progress(self.on_progress, PHASE_IMAGE_COMPARE, i + len(batch), total)

        return modified

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelled("comparison cancelled")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
