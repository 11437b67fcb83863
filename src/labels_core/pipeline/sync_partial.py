import asyncio
import time
from typing import Iterable, Optional

from labels_core.domain.errors import OperationCancelled, StructuralDiffError, SyncError
from labels_core.domain.results import PHASE_COMPARING, PHASE_SYNCING, SyncBreakdown, SyncResult
from labels_core.format.labels.id_table import read_id_table
from labels_core.format.labels.layout import Layout, cart_id_from_hex
from labels_core.pipeline.compare_detailed import DEFAULT_BATCH_SIZE, CompareDetailed
from labels_core.pipeline.progress import ProgressCallback, emit_progress
from labels_core.utils.io import SlotFile
from labels_core.utils.log import setup_logger

logger = setup_logger(__name__)


class PartialSync:
    """
    只把有变化的图片槽位从源文件复制到目标文件

    目标文件的ID表不会被改写，因此只适用于两边卡带ID集合相同的情况；
    ID集合不同时抛出StructuralDiffError，需要整文件复制。
    写入过程中出错会直接中止，已写入的槽位不回滚。
    """

    def __init__(self, source_path: str, dest_path: str,
                 modified: Optional[Iterable[str]] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 cancel_event: Optional[asyncio.Event] = None):
        """
        初始化PartialSync

        Args:
            source_path (str): 源labels.db路径
            dest_path (str): 目标labels.db路径
            modified (Optional[Iterable[str]]): 需要同步的卡带ID（十六进制）。
                为None时先以完整哈希做一次详细比较得到；传入时按原样信任
            on_progress (Optional[ProgressCallback]): 进度回调
            batch_size (int): 内部比较的批大小
            cancel_event (Optional[asyncio.Event]): 设置后在槽位之间中止
        """
        self.source_path = source_path
        self.dest_path = dest_path
        self.modified = list(modified) if modified is not None else None
        self.on_progress = on_progress
        self.batch_size = batch_size
        self.cancel_event = cancel_event

    async def run(self) -> SyncResult:
        """
        执行同步

        Returns:
            SyncResult: 同步结果
        """
        start = time.perf_counter()
        compare_ms = 0.0

        to_sync = self.modified
        if to_sync is None:
            # 第一步：以完整哈希找出差异
            await emit_progress(self.on_progress, PHASE_COMPARING, 0, 1)
            compare_start = time.perf_counter()
            diff = await CompareDetailed(
                self.source_path,
                self.dest_path,
                full_hash=True,
                batch_size=self.batch_size,
                cancel_event=self.cancel_event,
            ).run()
            compare_ms = _elapsed_ms(compare_start)
            await emit_progress(self.on_progress, PHASE_COMPARING, 1, 1)

            if diff.structural:
                raise StructuralDiffError(diff.only_in_local, diff.only_in_other)
            to_sync = list(diff.modified)

        if not to_sync:
            return SyncResult(
                success=True,
                duration_ms=_elapsed_ms(start),
                breakdown=SyncBreakdown(compare_ms=compare_ms, write_ms=0.0),
            )

        # 第二步：两边的ID表分别读取，同一卡带在两边的槽位可能不同
        write_start = time.perf_counter()
        async with SlotFile.open(self.source_path) as source, \
                SlotFile.open(self.dest_path, writable=True) as dest:
            source_table, dest_table = await asyncio.gather(
                read_id_table(source),
                read_id_table(dest),
            )

            # 第三步：逐个复制槽位
            bytes_written = 0
            updated = 0
            skipped = []
            total = len(to_sync)
            for i, cart_id_hex in enumerate(to_sync):
                if self.cancel_event is not None and self.cancel_event.is_set():
                    raise OperationCancelled(f"sync cancelled after {updated} of {total} entries")

                await emit_progress(self.on_progress, PHASE_SYNCING, i + 1, total, cart_id_hex)

                cart_id = cart_id_from_hex(cart_id_hex)
                source_index = source_table.slot_of(cart_id)
                dest_index = dest_table.slot_of(cart_id)

                if source_index is None or dest_index is None:
                    logger.warning("cart %s missing from %s, skipped", cart_id_hex,
                                   self.source_path if source_index is None else self.dest_path)
                    skipped.append(cart_id_hex)
                    continue

                slot = await source.read_at(Layout.slot_offset(source_index), Layout.IMAGE_SLOT_SIZE)
                if len(slot) != Layout.IMAGE_SLOT_SIZE:
                    raise SyncError(
                        f"short read of cart {cart_id_hex} from {self.source_path}: "
                        f"{len(slot)} of {Layout.IMAGE_SLOT_SIZE} bytes"
                    )

                bytes_written += await dest.write_at(Layout.slot_offset(dest_index), slot)
                updated += 1

        write_ms = _elapsed_ms(write_start)
        logger.info("synced %d entries (%d bytes) from %s to %s", updated, bytes_written,
                    self.source_path, self.dest_path)

        return SyncResult(
            success=True,
            entries_updated=updated,
            bytes_written=bytes_written,
            skipped=tuple(skipped),
            duration_ms=_elapsed_ms(start),
            breakdown=SyncBreakdown(compare_ms=compare_ms, write_ms=write_ms),
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
