import asyncio
import os
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from labels_core.domain.errors import FormatError
from labels_core.domain.results import (
    MERGE_OVERWRITE,
    PHASE_COPYING,
    REASON_SIZE_MISMATCH,
    DetailedCompareResult,
    MergeResult,
    QuickCompareResult,
    SyncBreakdown,
    SyncResult,
)
from labels_core.format.labels.header import LabelsHeader
from labels_core.format.labels.id_table import parse_id_table, read_id_table, read_id_table_file
from labels_core.format.labels.layout import Layout, cart_id_from_hex, cart_id_to_hex
from labels_core.pipeline.build_db import BuildDb
from labels_core.pipeline.compare_detailed import DEFAULT_BATCH_SIZE, CompareDetailed
from labels_core.pipeline.compare_quick import CompareQuick
from labels_core.pipeline.edit_db import EditDb, MergeDb
from labels_core.pipeline.inject_diff import InjectDiff
from labels_core.pipeline.progress import ProgressCallback, emit_progress
from labels_core.pipeline.sync_partial import PartialSync
from labels_core.tools.img_pillow import encode_png, prepare_image
from labels_core.utils.io import SlotFile, atomic_copy
from labels_core.utils.log import setup_logger

logger = setup_logger(__name__)


async def compare_quick(local_path: str, other_path: str,
                        on_progress: Optional[ProgressCallback] = None) -> QuickCompareResult:
    """
    快速比较两个labels.db，出错时返回reason='unknown'而不抛异常

    Args:
        local_path (str): 本地labels.db路径
        other_path (str): 另一份labels.db路径
        on_progress (Optional[ProgressCallback]): 进度回调

    Returns:
        QuickCompareResult: 比较结果
    """
    return await CompareQuick(local_path, other_path, on_progress=on_progress).run()


async def compare_detailed(local_path: str, other_path: str, full_hash: bool = False,
                           batch_size: int = DEFAULT_BATCH_SIZE,
                           on_progress: Optional[ProgressCallback] = None,
                           cancel_event: Optional[asyncio.Event] = None) -> DetailedCompareResult:
    """
    详细比较两个labels.db，IO错误直接抛出

    Args:
        local_path (str): 本地labels.db路径
        other_path (str): 另一份labels.db路径
        full_hash (bool): 是否对整个图片数据做哈希
        batch_size (int): 每批并发比较的条目数
        on_progress (Optional[ProgressCallback]): 进度回调
        cancel_event (Optional[asyncio.Event]): 取消信号

    Returns:
        DetailedCompareResult: 比较结果
    """
    return await CompareDetailed(
        local_path,
        other_path,
        full_hash=full_hash,
        batch_size=batch_size,
        on_progress=on_progress,
        cancel_event=cancel_event,
    ).run()


async def sync_changed_entries(source_path: str, dest_path: str,
                               on_progress: Optional[ProgressCallback] = None,
                               modified: Optional[Iterable[str]] = None,
                               batch_size: int = DEFAULT_BATCH_SIZE,
                               cancel_event: Optional[asyncio.Event] = None) -> SyncResult:
    """
    只把有变化的槽位从source写入dest

    Args:
        source_path (str): 源labels.db路径
        dest_path (str): 目标labels.db路径
        on_progress (Optional[ProgressCallback]): 进度回调
        modified (Optional[Iterable[str]]): 已知需要同步的卡带ID，为None时内部以完整哈希比较得到
        batch_size (int): 内部比较的批大小
        cancel_event (Optional[asyncio.Event]): 取消信号

    Returns:
        SyncResult: 同步结果

    Raises:
        StructuralDiffError: 两边卡带ID集合不同时抛出
    """
    return await PartialSync(
        source_path,
        dest_path,
        modified=modified,
        on_progress=on_progress,
        batch_size=batch_size,
        cancel_event=cancel_event,
    ).run()


async def sync_labels_db(source_path: str, dest_path: str,
                         on_progress: Optional[ProgressCallback] = None,
                         full_hash: bool = True,
                         batch_size: int = DEFAULT_BATCH_SIZE,
                         cancel_event: Optional[asyncio.Event] = None) -> SyncResult:
    """
    让dest与source一致

    先快速比较：文件大小不同时只写槽位无法让两者一致，直接整文件原子复制；
    否则详细比较，ID集合相同时只写入变化的槽位，不同时整文件原子复制。
    full_hash为False时抽样比较，图片中间区域的修改可能被漏掉。

    Args:
        source_path (str): 源labels.db路径
        dest_path (str): 目标labels.db路径
        on_progress (Optional[ProgressCallback]): 进度回调
        full_hash (bool): 比较时是否使用完整哈希
        batch_size (int): 每批并发比较的条目数
        cancel_event (Optional[asyncio.Event]): 取消信号

    Returns:
        SyncResult: 同步结果，mode为'partial'或'full_copy'
    """
    start = time.perf_counter()

    if not await asyncio.to_thread(os.path.exists, dest_path):
        return await _full_copy(source_path, dest_path, on_progress, start, 0.0)

    compare_start = time.perf_counter()
    quick = await compare_quick(source_path, dest_path, on_progress=on_progress)
    if quick.reason == REASON_SIZE_MISMATCH:
        logger.info("sizes of %s and %s differ, copying whole file", source_path, dest_path)
        return await _full_copy(source_path, dest_path, on_progress, start,
                                (time.perf_counter() - compare_start) * 1000.0)

    if quick.identical and not full_hash:
        return SyncResult(
            success=True,
            duration_ms=(time.perf_counter() - start) * 1000.0,
            breakdown=SyncBreakdown(compare_ms=(time.perf_counter() - compare_start) * 1000.0),
        )

    diff = await compare_detailed(source_path, dest_path, full_hash=full_hash, batch_size=batch_size,
                                  on_progress=on_progress, cancel_event=cancel_event)
    compare_ms = (time.perf_counter() - compare_start) * 1000.0

    if diff.structural:
        logger.info("ID sets of %s and %s differ, copying whole file", source_path, dest_path)
        return await _full_copy(source_path, dest_path, on_progress, start, compare_ms)

    result = await sync_changed_entries(source_path, dest_path, on_progress=on_progress,
                                        modified=diff.modified, cancel_event=cancel_event)
    return SyncResult(
        success=result.success,
        entries_updated=result.entries_updated,
        bytes_written=result.bytes_written,
        skipped=result.skipped,
        mode='partial',
        duration_ms=(time.perf_counter() - start) * 1000.0,
        breakdown=SyncBreakdown(compare_ms=compare_ms, write_ms=result.breakdown.write_ms),
    )


async def _full_copy(source_path: str, dest_path: str, on_progress: Optional[ProgressCallback],
                     start: float, compare_ms: float) -> SyncResult:
    await emit_progress(on_progress, PHASE_COPYING, 0, 1)
    write_start = time.perf_counter()
    table = await read_id_table_file(source_path)
    bytes_written = await asyncio.to_thread(atomic_copy, source_path, dest_path)
    write_ms = (time.perf_counter() - write_start) * 1000.0
    await emit_progress(on_progress, PHASE_COPYING, 1, 1)

    return SyncResult(
        success=True,
        entries_updated=table.active_entry_count,
        bytes_written=bytes_written,
        mode='full_copy',
        duration_ms=(time.perf_counter() - start) * 1000.0,
        breakdown=SyncBreakdown(compare_ms=compare_ms, write_ms=write_ms),
    )


async def create_modified_labels_db(source_path: str, dest_path: str, count: int) -> List[str]:
    """
    复制source到dest，并修改count个条目的图片数据

    Args:
        source_path (str): 源labels.db路径
        dest_path (str): 输出路径
        count (int): 修改的条目数

    Returns:
        List[str]: 被修改的卡带ID
    """
    return await InjectDiff(source_path, dest_path, count).run()


def build_labels_db(entries: Iterable[Tuple[int, bytes]], out_path: str) -> int:
    """
    由BGRA图片数据生成labels.db

    Args:
        entries (Iterable[Tuple[int, bytes]]): (卡带ID, BGRA数据)
        out_path (str): 输出文件路径

    Returns:
        int: 条目数
    """
    return BuildDb(entries).build(out_path)


def build_labels_db_from_images(images: Dict[str, Union[str, Path, bytes]], out_path: str) -> int:
    """
    由图片文件生成labels.db，每张图片缩放为74x86

    Args:
        images (Dict[str, Union[str, Path, bytes]]): 卡带ID(十六进制) -> 图片路径或内容
        out_path (str): 输出文件路径

    Returns:
        int: 条目数
    """
    entries = [(cart_id_from_hex(cart_id_hex), prepare_image(image)) for cart_id_hex, image in images.items()]
    return build_labels_db(entries, out_path)


def inspect_labels_db(path: str, limit: int = 16) -> dict:
    """
    解析labels.db并返回概要信息

    Args:
        path (str): labels.db路径
        limit (int): 返回的卡带ID个数上限

    Returns:
        dict: 概要信息
    """
    file_size = os.path.getsize(path)
    physical = Layout.physical_entry_count(file_size)

    with open(path, 'rb') as f:
        header_data = f.read(Layout.HEADER_SIZE)
        f.seek(Layout.ID_TABLE_START)
        table_bytes = f.read(physical * Layout.ID_WORD_SIZE)

    table = parse_id_table(table_bytes, physical)
    return {
        'header': LabelsHeader.inspect(header_data),
        'file_size': file_size,
        'physical_entry_count': physical,
        'active_entry_count': table.active_entry_count,
        'cart_ids': [cart_id_to_hex(cart_id) for cart_id in list(table.ids)[:limit]],
    }


def verify_labels_db(path: str) -> bool:
    """
    校验labels.db的Header
    """
    with open(path, 'rb') as f:
        header_data = f.read(Layout.HEADER_SIZE)
    valid, _ = LabelsHeader.verify(header_data)
    return valid


async def list_entries(path: str) -> List[Tuple[str, int]]:
    """
    列出labels.db中的全部条目

    Returns:
        List[Tuple[str, int]]: (卡带ID, 槽位索引)，按槽位升序
    """
    table = await read_id_table_file(path)
    return [(cart_id_to_hex(cart_id), index) for cart_id, index in table.ids.items()]


async def extract_label_png(path: str, cart_id_hex: str) -> Optional[bytes]:
    """
    读取指定卡带的标签图片并编码为PNG

    Args:
        path (str): labels.db路径
        cart_id_hex (str): 卡带ID

    Returns:
        Optional[bytes]: PNG数据，卡带不存在时返回None

    Raises:
        FormatError: 槽位数据不完整时抛出
    """
    cart_id = cart_id_from_hex(cart_id_hex)
    async with SlotFile.open(path) as handle:
        table = await read_id_table(handle)
        index = table.slot_of(cart_id)
        if index is None:
            return None
        bgra = await handle.read_at(Layout.slot_offset(index), Layout.IMAGE_DATA_SIZE)

    if len(bgra) != Layout.IMAGE_DATA_SIZE:
        raise FormatError(f"Truncated image slot for {cart_id_to_hex(cart_id)} in {path}")
    return await asyncio.to_thread(encode_png, bgra)


def update_entry(path: str, cart_id_hex: str, bgra: bytes) -> int:
    """
    替换已有条目的BGRA图片数据

    Args:
        path (str): labels.db路径
        cart_id_hex (str): 卡带ID
        bgra (bytes): 74x86 BGRA图片数据

    Returns:
        int: 条目所在槽位

    Raises:
        PackError: 卡带ID不存在时抛出
    """
    return EditDb(path).update(cart_id_from_hex(cart_id_hex), bgra)


def add_entry(path: str, cart_id_hex: str, bgra: bytes) -> int:
    """
    按卡带ID排序位置插入新条目，文件不存在时新建

    Returns:
        int: 新条目所在槽位

    Raises:
        PackError: 卡带ID已存在或条目数已满时抛出
    """
    return EditDb(path).add(cart_id_from_hex(cart_id_hex), bgra)


def delete_entry(path: str, cart_id_hex: str) -> int:
    """
    删除条目

    Returns:
        int: 剩余条目数
    """
    return EditDb(path).delete(cart_id_from_hex(cart_id_hex))


def update_label_image(path: str, cart_id_hex: str, image: Union[str, Path, bytes], mode: str = 'cover') -> int:
    """
    用图片文件替换已有条目，图片缩放为74x86
    """
    return update_entry(path, cart_id_hex, prepare_image(image, mode=mode))


def add_cartridge(path: str, cart_id_hex: str, image: Union[str, Path, bytes], mode: str = 'cover') -> int:
    """
    用图片文件添加新条目，图片缩放为74x86
    """
    return add_entry(path, cart_id_hex, prepare_image(image, mode=mode))


def merge_labels_db(local_path: str, incoming_path: str, mode: str = MERGE_OVERWRITE) -> MergeResult:
    """
    把导入的labels.db合并进本地labels.db

    Args:
        local_path (str): 本地labels.db路径
        incoming_path (str): 导入的labels.db路径
        mode (str): 'overwrite'覆盖已有条目，'skip'保留本地已有条目

    Returns:
        MergeResult: 新增、更新、跳过的条目数

    Raises:
        FormatError: 导入文件Header不合法时抛出
    """
    return MergeDb(local_path, incoming_path, mode=mode).run()
