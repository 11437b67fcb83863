import struct
from typing import Iterable, Optional, Tuple

from labels_core.domain.errors import PackError
from labels_core.format.labels.header import LabelsHeader
from labels_core.format.labels.layout import Layout, cart_id_to_hex
from labels_core.utils.io import atomic_write


class BuildDb:
    """
    构建完整labels.db的类
    """

    def __init__(self, entries: Iterable[Tuple[int, bytes]], header: Optional[bytes] = None, sort: bool = True):
        """
        初始化BuildDb

        Args:
            entries (Iterable[Tuple[int, bytes]]): (卡带ID, BGRA图片数据)列表
            header (Optional[bytes]): 沿用已有文件的256字节Header，为None时生成新的
            sort (bool): 是否按卡带ID排序，为False时保持给定的槽位顺序
        """
        self.entries = list(entries)
        self.header = header
        self.sort = sort

    def pack(self) -> bytes:
        """
        序列化整个数据库

        默认按卡带ID升序排列；ID表剩余部分和padding填充0xFF。

        Returns:
            bytes: labels.db数据

        Raises:
            PackError: 输入不合法时抛出
        """
        # 按卡带ID排序（设备端使用二分查找）
        entries = sorted(self.entries, key=lambda e: e[0]) if self.sort else self.entries

        if self.header is not None and len(self.header) != Layout.HEADER_SIZE:
            raise PackError(f"Invalid header size: {len(self.header)}, expected {Layout.HEADER_SIZE}")

        if len(entries) > Layout.MAX_ENTRIES:
            raise PackError(f"Too many entries: {len(entries)}, maximum is {Layout.MAX_ENTRIES}")

        seen = set()
        for cart_id, payload in entries:
            if not 0 <= cart_id < Layout.END_OF_TABLE:
                raise PackError(f"Invalid cart_id: 0x{cart_id:x}")
            if cart_id in seen:
                raise PackError(f"Duplicate cart_id: {cart_id_to_hex(cart_id)}")
            seen.add(cart_id)
            if len(payload) != Layout.IMAGE_DATA_SIZE:
                raise PackError(
                    f"Invalid image data size for {cart_id_to_hex(cart_id)}: "
                    f"{len(payload)}, expected {Layout.IMAGE_DATA_SIZE}"
                )

        data = bytearray([Layout.PADDING_FILL]) * Layout.file_size_for(len(entries))

        # 写入Header
        data[0:Layout.HEADER_SIZE] = self.header if self.header is not None else LabelsHeader.pack()

        # 写入ID表和图片槽位
        for i, (cart_id, payload) in enumerate(entries):
            struct.pack_into('<I', data, Layout.ID_TABLE_START + i * Layout.ID_WORD_SIZE, cart_id)
            offset = Layout.slot_offset(i)
            data[offset:offset + Layout.IMAGE_DATA_SIZE] = payload

        return bytes(data)

    def build(self, out_path: str) -> int:
        """
        构建并原子写入labels.db

        Args:
            out_path (str): 输出文件路径

        Returns:
            int: 条目数
        """
        atomic_write(out_path, self.pack())
        return len(self.entries)
