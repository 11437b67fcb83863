import tempfile
import os
import struct
import pytest
from labels_core.api import build_labels_db, inspect_labels_db, verify_labels_db
from labels_core.domain.errors import PackError
from labels_core.format.labels.header import LabelsHeader
from labels_core.format.labels.layout import Layout
from db_factory import make_payload, patch_bytes, read_bytes

class TestHeader:
    """
    Header 和构建测试类
    """
    
    def setup_method(self):
        """
        测试前的设置
        """
        # 创建临时目录
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, 'labels.db')
    
    def teardown_method(self):
        """
        测试后的清理
        """
        self.temp_dir.cleanup()
    
    def build(self, cart_ids):
        """
        生成labels.db
        """
        return build_labels_db([(c, make_payload(c)) for c in cart_ids], self.db_path)
    
    def test_header_size(self):
        """
        测试header大小是否为256
        """
        assert len(LabelsHeader.pack()) == 0x100
    
    def test_header_fields(self):
        """
        测试header字段是否正确
        """
        header = LabelsHeader.pack()
        assert header[0] == 0x07
        assert header[1:12] == b'Analogue-Co'
        assert header[0x20:0x20 + 18] == b'Analogue-3D.labels'
        assert struct.unpack_from('<I', header, 0x40)[0] == 0x00020000
    
    def test_verify_header(self):
        """
        测试header校验
        """
        self.build([1, 2])
        assert verify_labels_db(self.db_path)
        
        # 破坏magic
        patch_bytes(self.db_path, 0, b'\x08')
        assert not verify_labels_db(self.db_path)
        
        valid, error = LabelsHeader.verify(read_bytes(self.db_path, 0, 0x100))
        assert not valid
        assert 'magic' in error
    
    def test_verify_short_data(self):
        """
        测试数据不足时校验失败且不抛异常
        """
        valid, error = LabelsHeader.verify(b'\x07Analogue')
        assert not valid
        assert 'too small' in error
    
    def test_file_size(self):
        """
        测试文件大小
        """
        count = self.build([3, 1, 2])
        assert count == 3
        assert os.path.getsize(self.db_path) == 0x4100 + 3 * 25600
    
    def test_entries_sorted_and_padded(self):
        """
        测试条目按卡带ID排序，ID表剩余部分和padding为0xFF
        """
        self.build([0x30, 0x10, 0x20])
        
        words = struct.unpack('<4I', read_bytes(self.db_path, Layout.ID_TABLE_START, 16))
        assert words == (0x10, 0x20, 0x30, 0xFFFFFFFF)
        
        # 第二个槽位是0x20的图片
        slot = read_bytes(self.db_path, Layout.slot_offset(1), Layout.IMAGE_SLOT_SIZE)
        assert slot[:Layout.IMAGE_DATA_SIZE] == make_payload(0x20)
        assert slot[Layout.IMAGE_DATA_SIZE:] == b'\xff' * 144
    
    def test_inspect(self):
        """
        测试inspect结果
        """
        self.build([0xb393776d, 0x00000001])
        info = inspect_labels_db(self.db_path)
        assert info['header']['valid']
        assert info['header']['version'] == '2.0'
        assert info['physical_entry_count'] == 2
        assert info['active_entry_count'] == 2
        assert info['cart_ids'] == ['00000001', 'b393776d']
    
    def test_duplicate_cart_id(self):
        """
        测试重复卡带ID
        """
        with pytest.raises(PackError):
            self.build([5, 5])
        assert not os.path.exists(self.db_path)
    
    def test_invalid_payload_size(self):
        """
        测试图片数据大小错误
        """
        with pytest.raises(PackError):
            build_labels_db([(1, b'\x00' * 100)], self.db_path)
    
    def test_sentinel_cart_id_rejected(self):
        """
        测试0xFFFFFFFF不能作为卡带ID
        """
        with pytest.raises(PackError):
            self.build([0xFFFFFFFF])
    
    def test_empty_database(self):
        """
        测试空数据库
        """
        self.build([])
        assert os.path.getsize(self.db_path) == 0x4100
        info = inspect_labels_db(self.db_path)
        assert info['active_entry_count'] == 0
        assert info['cart_ids'] == []
