import asyncio
import shutil
import struct
from typing import List

from labels_core.format.labels.id_table import read_id_table
from labels_core.format.labels.layout import Layout, cart_id_to_hex
from labels_core.utils.io import SlotFile

# 每个被修改的槽位在图片数据开头和结尾各改动的字节数
PERTURB_SIZE = 100
PERTURB_DELTA = 50


def _perturb(data: bytes) -> bytes:
    return bytes((b + PERTURB_DELTA) % 256 for b in data)


class InjectDiff:
    """
    复制labels.db并修改其中若干条目的图片数据，用于测试和基准

    修改均匀分布在有效条目范围内，只改动图片数据的开头和结尾，
    不会触碰ID表和padding，抽样哈希和完整哈希都能发现。
    """

    def __init__(self, source_path: str, dest_path: str, count: int):
        """
        初始化InjectDiff

        Args:
            source_path (str): 源labels.db路径
            dest_path (str): 输出路径
            count (int): 修改的条目数，超过有效条目数时取有效条目数
        """
        if count < 0:
            raise ValueError(f"count must not be negative, got {count}")
        self.source_path = source_path
        self.dest_path = dest_path
        self.count = count

    async def run(self) -> List[str]:
        """
        执行复制和修改

        Returns:
            List[str]: 被修改的卡带ID（十六进制）
        """
        await asyncio.to_thread(shutil.copyfile, self.source_path, self.dest_path)

        modified = []
        async with SlotFile.open(self.dest_path, writable=True) as handle:
            table = await read_id_table(handle)
            active = table.active_entry_count
            count = min(self.count, active)
            if count == 0:
                return modified

            for i in range(count):
                index = i * active // count
                offset = Layout.slot_offset(index)

                head = await handle.read_at(offset, PERTURB_SIZE)
                await handle.write_at(offset, _perturb(head))

                tail_offset = offset + Layout.IMAGE_DATA_SIZE - PERTURB_SIZE
                tail = await handle.read_at(tail_offset, PERTURB_SIZE)
                await handle.write_at(tail_offset, _perturb(tail))

                word = await handle.read_at(Layout.ID_TABLE_START + index * Layout.ID_WORD_SIZE, Layout.ID_WORD_SIZE)
                modified.append(cart_id_to_hex(struct.unpack('<I', word)[0]))

        return modified
