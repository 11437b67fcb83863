import os
from typing import List, Tuple

from labels_core.domain.errors import FormatError, PackError
from labels_core.domain.results import MERGE_OVERWRITE, MERGE_SKIP, MergeResult
from labels_core.format.labels.header import LabelsHeader
from labels_core.format.labels.id_table import parse_id_table
from labels_core.format.labels.layout import Layout, cart_id_to_hex
from labels_core.pipeline.build_db import BuildDb
from labels_core.utils.io import atomic_copy, atomic_write
from labels_core.utils.log import setup_logger

logger = setup_logger(__name__)

Entry = Tuple[int, bytes]


def load_db(path: str) -> Tuple[bytes, List[Entry]]:
    """
    读取整个labels.db

    Args:
        path (str): labels.db路径

    Returns:
        Tuple[bytes, List[Entry]]: (Header, 按槽位顺序排列的(卡带ID, BGRA数据))

    Raises:
        FormatError: Header不合法或槽位数据不完整时抛出
    """
    with open(path, 'rb') as f:
        data = f.read()

    valid, error = LabelsHeader.verify(data)
    if not valid:
        raise FormatError(f"Invalid labels.db {path}: {error}")

    physical = Layout.physical_entry_count(len(data))
    table_start = Layout.ID_TABLE_START
    table = parse_id_table(data[table_start:table_start + Layout.id_table_size(len(data))], physical)

    entries = []
    for cart_id, index in sorted(table.ids.items(), key=lambda item: item[1]):
        offset = Layout.slot_offset(index)
        payload = data[offset:offset + Layout.IMAGE_DATA_SIZE]
        if len(payload) != Layout.IMAGE_DATA_SIZE:
            raise FormatError(f"Truncated image slot for {cart_id_to_hex(cart_id)} in {path}")
        entries.append((cart_id, payload))

    return data[:Layout.HEADER_SIZE], entries


def insert_position(entries: List[Entry], cart_id: int) -> int:
    """
    新条目的插入位置：第一个卡带ID大于cart_id的槽位之前

    Args:
        entries (List[Entry]): 按槽位顺序排列的条目
        cart_id (int): 新卡带ID

    Returns:
        int: 插入位置
    """
    for i, (existing, _) in enumerate(entries):
        if existing > cart_id:
            return i
    return len(entries)


def _index_of(entries: List[Entry], cart_id: int) -> int:
    for i, (existing, _) in enumerate(entries):
        if existing == cart_id:
            return i
    raise PackError(f"Cartridge ID {cart_id_to_hex(cart_id)} not found")


class EditDb:
    """
    修改单个labels.db条目的类

    每次修改都会读取整个文件、在内存中重建后原子写回，
    其余条目的槽位顺序和Header保持不变。
    """

    def __init__(self, path: str):
        """
        初始化EditDb

        Args:
            path (str): labels.db路径
        """
        self.path = path

    def _store(self, header: bytes, entries: List[Entry]) -> None:
        atomic_write(self.path, BuildDb(entries, header=header, sort=False).pack())

    def update(self, cart_id: int, bgra: bytes) -> int:
        """
        替换已有条目的图片

        Args:
            cart_id (int): 卡带ID
            bgra (bytes): 74x86 BGRA图片数据

        Returns:
            int: 条目所在槽位

        Raises:
            PackError: 卡带ID不存在或图片大小不对时抛出
        """
        header, entries = load_db(self.path)
        index = _index_of(entries, cart_id)
        entries[index] = (cart_id, bgra)
        self._store(header, entries)
        logger.info("updated %s in %s", cart_id_to_hex(cart_id), self.path)
        return index

    def add(self, cart_id: int, bgra: bytes) -> int:
        """
        插入新条目，文件不存在时新建

        Args:
            cart_id (int): 卡带ID
            bgra (bytes): 74x86 BGRA图片数据

        Returns:
            int: 新条目所在槽位

        Raises:
            PackError: 卡带ID已存在或条目数已满时抛出
        """
        if os.path.exists(self.path):
            header, entries = load_db(self.path)
        else:
            header, entries = LabelsHeader.pack(), []

        if any(existing == cart_id for existing, _ in entries):
            raise PackError(f"Cartridge ID {cart_id_to_hex(cart_id)} already exists")

        index = insert_position(entries, cart_id)
        entries.insert(index, (cart_id, bgra))
        self._store(header, entries)
        logger.info("added %s to %s at slot %d", cart_id_to_hex(cart_id), self.path, index)
        return index

    def delete(self, cart_id: int) -> int:
        """
        删除条目，后面的槽位依次前移

        Args:
            cart_id (int): 卡带ID

        Returns:
            int: 剩余条目数

        Raises:
            PackError: 卡带ID不存在时抛出
        """
        header, entries = load_db(self.path)
        del entries[_index_of(entries, cart_id)]
        self._store(header, entries)
        logger.info("deleted %s from %s", cart_id_to_hex(cart_id), self.path)
        return len(entries)


class MergeDb:
    """
    把导入的labels.db合并进本地labels.db的类
    """

    def __init__(self, local_path: str, incoming_path: str, mode: str = MERGE_OVERWRITE):
        """
        初始化MergeDb

        Args:
            local_path (str): 本地labels.db路径，不存在时直接复制导入文件
            incoming_path (str): 导入的labels.db路径
            mode (str): 'overwrite'覆盖已有条目，'skip'只添加新条目
        """
        if mode not in (MERGE_OVERWRITE, MERGE_SKIP):
            raise ValueError(f"Unknown merge mode: {mode!r}, expected '{MERGE_OVERWRITE}' or '{MERGE_SKIP}'")
        self.local_path = local_path
        self.incoming_path = incoming_path
        self.mode = mode

    def run(self) -> MergeResult:
        """
        执行合并

        Returns:
            MergeResult: 合并结果

        Raises:
            FormatError: 导入文件或本地文件不合法时抛出
            PackError: 合并后条目数超过上限时抛出
        """
        _, incoming = load_db(self.incoming_path)

        if not os.path.exists(self.local_path):
            file_size = atomic_copy(self.incoming_path, self.local_path)
            return MergeResult(
                mode=self.mode,
                added=len(incoming),
                entry_count=len(incoming),
                file_size=file_size,
            )

        header, entries = load_db(self.local_path)
        positions = {cart_id: i for i, (cart_id, _) in enumerate(entries)}
        added = updated = skipped = 0
        additions = []

        for cart_id, payload in incoming:
            if cart_id not in positions:
                additions.append((cart_id, payload))
                added += 1
            elif self.mode == MERGE_OVERWRITE:
                entries[positions[cart_id]] = (cart_id, payload)
                updated += 1
            else:
                skipped += 1

        # 新条目逐个插入到排序位置，已有条目的相对顺序不变
        for cart_id, payload in additions:
            entries.insert(insert_position(entries, cart_id), (cart_id, payload))

        data = BuildDb(entries, header=header, sort=False).pack()
        if added or updated:
            atomic_write(self.local_path, data)

        logger.info("merged %s into %s: %d added, %d updated, %d skipped",
                    self.incoming_path, self.local_path, added, updated, skipped)
        return MergeResult(
            mode=self.mode,
            added=added,
            updated=updated,
            skipped=skipped,
            entry_count=len(entries),
            file_size=len(data),
        )
