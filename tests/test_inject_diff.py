import asyncio
import os
import tempfile
import pytest
from labels_core.api import compare_detailed, create_modified_labels_db
from labels_core.format.labels.layout import Layout
from db_factory import read_bytes, write_db

class TestInjectDiff:
    """
    差异注入测试类
    """

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.source_path = os.path.join(self.temp_dir.name, 'source.db')
        self.dest_path = os.path.join(self.temp_dir.name, 'dest.db')
        write_db(self.source_path, range(1, 11))

    def teardown_method(self):
        self.temp_dir.cleanup()

    def test_evenly_spread(self):
        """
        测试修改均匀分布在有效条目中
        """
        modified = asyncio.run(create_modified_labels_db(self.source_path, self.dest_path, 3))
        assert modified == ['00000001', '00000004', '00000007']

    def test_detected_by_both_modes(self):
        """
        测试抽样哈希和完整哈希都能发现
        """
        modified = asyncio.run(create_modified_labels_db(self.source_path, self.dest_path, 4))
        for full_hash in (False, True):
            result = asyncio.run(compare_detailed(self.source_path, self.dest_path, full_hash=full_hash))
            assert list(result.modified) == modified

    def test_table_and_padding_untouched(self):
        """
        测试不改动Header、ID表和padding
        """
        asyncio.run(create_modified_labels_db(self.source_path, self.dest_path, 10))
        assert read_bytes(self.dest_path, 0, Layout.DATA_START) == read_bytes(self.source_path, 0, Layout.DATA_START)
        for i in range(10):
            offset = Layout.slot_offset(i) + Layout.IMAGE_DATA_SIZE
            assert read_bytes(self.dest_path, offset, Layout.SLOT_PADDING) == b'\xff' * Layout.SLOT_PADDING

    def test_count_capped(self):
        """
        测试count超过条目数时只修改全部条目
        """
        modified = asyncio.run(create_modified_labels_db(self.source_path, self.dest_path, 25))
        assert len(modified) == 10
        assert len(set(modified)) == 10

    def test_zero(self):
        """
        测试count为0时只复制
        """
        modified = asyncio.run(create_modified_labels_db(self.source_path, self.dest_path, 0))
        assert modified == []
        assert asyncio.run(compare_detailed(self.source_path, self.dest_path, full_hash=True)).identical

    def test_negative_count(self):
        with pytest.raises(ValueError):
            asyncio.run(create_modified_labels_db(self.source_path, self.dest_path, -1))
