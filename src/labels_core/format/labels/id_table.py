import struct
from dataclasses import dataclass, field
from typing import Dict

from labels_core.format.labels.layout import Layout
from labels_core.utils.io import SlotFile


@dataclass
class IdTable:
    """
    一次比较/同步调用内使用的ID表快照

    ids 按槽位升序插入：cart_id -> 槽位索引
    """
    ids: Dict[int, int] = field(default_factory=dict)
    active_entry_count: int = 0
    physical_entry_count: int = 0

    def slot_of(self, cart_id: int):
        return self.ids.get(cart_id)

    def __contains__(self, cart_id: int) -> bool:
        return cart_id in self.ids

    def __len__(self) -> int:
        return len(self.ids)


def parse_id_table(table_bytes: bytes, physical_entry_count: int) -> IdTable:
    """
    解析ID表字节

    顺序扫描u32 little-endian字，遇到第一个0xFFFFFFFF停止，哨兵本身不计入。

    Args:
        table_bytes (bytes): 从ID_TABLE_START开始读取的数据
        physical_entry_count (int): 物理槽位数

    Returns:
        IdTable: 解析结果
    """
    # 文件被截断时实际读到的字节可能更少
    word_count = min(physical_entry_count, len(table_bytes) // Layout.ID_WORD_SIZE)

    ids = {}
    active = 0
    for i, (cart_id,) in enumerate(struct.iter_unpack('<I', table_bytes[:word_count * Layout.ID_WORD_SIZE])):
        if cart_id == Layout.END_OF_TABLE:
            break
        ids[cart_id] = i
        active += 1

    return IdTable(ids=ids, active_entry_count=active, physical_entry_count=physical_entry_count)


async def read_id_table(handle: SlotFile) -> IdTable:
    """
    从已打开的文件读取ID表

    Args:
        handle (SlotFile): 已打开的文件

    Returns:
        IdTable: 解析结果，文件小于DATA_START时为空表
    """
    physical = Layout.physical_entry_count(handle.size)
    if physical == 0:
        return IdTable()

    table_bytes = await handle.read_at(Layout.ID_TABLE_START, physical * Layout.ID_WORD_SIZE)
    return parse_id_table(table_bytes, physical)


async def read_id_table_file(path: str) -> IdTable:
    """
    按路径读取ID表
    """
    async with SlotFile.open(path) as handle:
        return await read_id_table(handle)
