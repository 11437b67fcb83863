import asyncio
import io
import os
import tempfile
from PIL import Image
from labels_core.api import (
    add_cartridge,
    add_entry,
    compare_detailed,
    delete_entry,
    list_entries,
    merge_labels_db,
    update_entry,
    update_label_image,
)
from labels_core.domain.errors import FormatError, PackError
from labels_core.format.labels.layout import Layout
from db_factory import make_payload, patch_bytes, read_bytes, write_db, write_raw_db
import pytest

class TestEditDb:
    """
    单条目修改测试类
    """

    def setup_method(self):
        """
        测试前的设置
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, 'labels.db')
        write_db(self.db_path, [0x10, 0x30, 0x50])

    def teardown_method(self):
        """
        测试后的清理
        """
        self.temp_dir.cleanup()

    def cart_ids(self, path=None):
        return [cart_id for cart_id, _ in asyncio.run(list_entries(path or self.db_path))]

    def slot_payload(self, index, path=None):
        return read_bytes(path or self.db_path, Layout.slot_offset(index), Layout.IMAGE_DATA_SIZE)

    def test_add_keeps_index_sorted(self):
        """
        测试新条目插入到排序位置，后面的槽位后移
        """
        header = read_bytes(self.db_path, 0, Layout.HEADER_SIZE)
        index = add_entry(self.db_path, '00000040', make_payload(0x40))
        assert index == 2
        assert self.cart_ids() == ['00000010', '00000030', '00000040', '00000050']
        assert os.path.getsize(self.db_path) == Layout.file_size_for(4)
        assert self.slot_payload(2) == make_payload(0x40)
        assert self.slot_payload(3) == make_payload(0x50)
        assert read_bytes(self.db_path, 0, Layout.HEADER_SIZE) == header

    def test_add_first_and_last(self):
        """
        测试插入到表头和表尾
        """
        assert add_entry(self.db_path, '00000001', make_payload(1)) == 0
        assert add_entry(self.db_path, 'ffff0000', make_payload(2)) == 4
        assert self.cart_ids() == ['00000001', '00000010', '00000030', '00000050', 'ffff0000']
        assert read_bytes(self.db_path, Layout.ID_TABLE_START + 5 * 4, 4) == b'\xff' * 4

    def test_add_duplicate(self):
        """
        测试卡带ID已存在时拒绝添加且不修改文件
        """
        with open(self.db_path, 'rb') as f:
            before = f.read()
        with pytest.raises(PackError):
            add_entry(self.db_path, '00000030', make_payload(7))
        with open(self.db_path, 'rb') as f:
            assert f.read() == before

    def test_add_creates_file(self):
        """
        测试文件不存在时新建
        """
        new_path = os.path.join(self.temp_dir.name, 'new', 'labels.db')
        assert add_entry(new_path, '12345678', make_payload(3)) == 0
        assert self.cart_ids(new_path) == ['12345678']
        assert os.path.getsize(new_path) == Layout.file_size_for(1)

    def test_add_when_full(self, monkeypatch):
        """
        测试条目数已满时拒绝添加
        """
        monkeypatch.setattr(Layout, 'MAX_ENTRIES', 3)
        with pytest.raises(PackError):
            add_entry(self.db_path, '00000040', make_payload(0x40))
        assert self.cart_ids() == ['00000010', '00000030', '00000050']

    def test_add_wrong_payload_size(self):
        with pytest.raises(PackError):
            add_entry(self.db_path, '00000040', b'\x00' * 100)

    def test_delete_compacts(self):
        """
        测试删除后后面的槽位前移，文件缩小一个槽位
        """
        size = os.path.getsize(self.db_path)
        assert delete_entry(self.db_path, '00000030') == 2
        assert self.cart_ids() == ['00000010', '00000050']
        assert os.path.getsize(self.db_path) == size - Layout.IMAGE_SLOT_SIZE
        assert self.slot_payload(1) == make_payload(0x50)
        assert read_bytes(self.db_path, Layout.ID_TABLE_START + 2 * 4, 4) == b'\xff' * 4

    def test_delete_unknown(self):
        with pytest.raises(PackError):
            delete_entry(self.db_path, '00000031')

    def test_update(self):
        """
        测试替换图片后只有该条目不同
        """
        original = os.path.join(self.temp_dir.name, 'original.db')
        write_db(original, [0x10, 0x30, 0x50])

        assert update_entry(self.db_path, '00000030', make_payload(99)) == 1
        assert os.path.getsize(self.db_path) == os.path.getsize(original)
        assert self.slot_payload(1) == make_payload(99)

        diff = asyncio.run(compare_detailed(original, self.db_path, full_hash=True))
        assert diff.modified == ('00000030',)
        assert not diff.structural

    def test_update_unknown(self):
        with pytest.raises(PackError):
            update_entry(self.db_path, '00000031', make_payload(99))

    def test_invalid_header(self):
        """
        测试Header不合法时拒绝修改
        """
        patch_bytes(self.db_path, 0, b'\x00')
        with pytest.raises(FormatError):
            update_entry(self.db_path, '00000030', make_payload(99))

    def test_keeps_slot_order(self):
        """
        测试未排序的文件修改后其余条目顺序不变
        """
        write_raw_db(self.db_path, [(cart_id, make_payload(cart_id)) for cart_id in (0x50, 0x10, 0x30)])
        delete_entry(self.db_path, '00000010')
        assert self.cart_ids() == ['00000050', '00000030']
        assert add_entry(self.db_path, '00000040', make_payload(0x40)) == 0
        assert self.cart_ids() == ['00000040', '00000050', '00000030']
        assert self.slot_payload(2) == make_payload(0x30)

    def test_image_entries(self):
        """
        测试由图片文件添加和替换条目
        """
        image = Image.new('RGBA', (148, 172), (255, 0, 0, 255))
        buffer = io.BytesIO()
        image.save(buffer, format='PNG')
        png = buffer.getvalue()

        assert add_cartridge(self.db_path, '00000020', png) == 1
        payload = self.slot_payload(1)
        # 红色在BGRA中为 00 00 ff ff
        assert payload[:4] == b'\x00\x00\xff\xff'

        assert update_label_image(self.db_path, '00000010', png, mode='contain') == 0
        assert self.slot_payload(0)[:4] == b'\x00\x00\xff\xff'


class TestMergeDb:
    """
    合并测试类
    """

    def setup_method(self):
        """
        测试前的设置
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.local_path = os.path.join(self.temp_dir.name, 'local.db')
        self.incoming_path = os.path.join(self.temp_dir.name, 'incoming.db')
        write_db(self.local_path, [1, 2, 3])
        write_db(self.incoming_path, [2, 3, 4], payload_for=lambda cart_id: make_payload(cart_id + 100))

    def teardown_method(self):
        """
        测试后的清理
        """
        self.temp_dir.cleanup()

    def read_file(self, path):
        with open(path, 'rb') as f:
            return f.read()

    def payload_of(self, path, index):
        return read_bytes(path, Layout.slot_offset(index), Layout.IMAGE_DATA_SIZE)

    def test_overwrite(self):
        """
        测试覆盖模式更新已有条目并添加新条目
        """
        result = merge_labels_db(self.local_path, self.incoming_path, mode='overwrite')
        assert (result.added, result.updated, result.skipped) == (1, 2, 0)
        assert result.entry_count == 4
        assert result.file_size == Layout.file_size_for(4)
        ids = [cart_id for cart_id, _ in asyncio.run(list_entries(self.local_path))]
        assert ids == ['00000001', '00000002', '00000003', '00000004']
        assert self.payload_of(self.local_path, 0) == make_payload(1)
        assert self.payload_of(self.local_path, 1) == make_payload(102)
        assert self.payload_of(self.local_path, 3) == make_payload(104)

    def test_skip(self):
        """
        测试跳过模式保留本地已有条目
        """
        result = merge_labels_db(self.local_path, self.incoming_path, mode='skip')
        assert (result.added, result.updated, result.skipped) == (1, 0, 2)
        assert result.entry_count == 4
        assert self.payload_of(self.local_path, 1) == make_payload(2)
        assert self.payload_of(self.local_path, 3) == make_payload(104)

    def test_skip_nothing_new(self):
        """
        测试没有新条目时不改写本地文件
        """
        write_db(self.incoming_path, [1, 2], payload_for=lambda cart_id: make_payload(cart_id + 100))
        before = self.read_file(self.local_path)
        result = merge_labels_db(self.local_path, self.incoming_path, mode='skip')
        assert (result.added, result.updated, result.skipped) == (0, 0, 2)
        assert self.read_file(self.local_path) == before

    def test_local_missing(self):
        """
        测试本地文件不存在时直接导入
        """
        os.remove(self.local_path)
        result = merge_labels_db(self.local_path, self.incoming_path)
        assert result.added == 3
        assert result.entry_count == 3
        assert self.read_file(self.local_path) == self.read_file(self.incoming_path)

    def test_invalid_incoming(self):
        """
        测试导入文件Header不合法时不修改本地文件
        """
        patch_bytes(self.incoming_path, 0x20, b'X')
        before = self.read_file(self.local_path)
        with pytest.raises(FormatError):
            merge_labels_db(self.local_path, self.incoming_path)
        assert self.read_file(self.local_path) == before

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            merge_labels_db(self.local_path, self.incoming_path, mode='replace')

    def test_to_dict(self):
        data = merge_labels_db(self.local_path, self.incoming_path).to_dict()
        assert data['mode'] == 'overwrite'
        assert set(data) == {'mode', 'added', 'updated', 'skipped', 'entry_count', 'file_size'}
