import tempfile
import os
import json
import pytest
from labels_core.config.load import load_sync_json
from labels_core.domain.errors import ConfigError

class TestConfig:
    """
    sync.json 测试类
    """
    
    def setup_method(self):
        """
        测试前的设置
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.sync_json_path = os.path.join(self.temp_dir.name, 'sync.json')
        self.base_sync_json = {
            "format": "LABELS_SYNC",
            "config_version": 1,
            "paths": {
                "local": ".local/labels.db",
                "remote": "/media/sd/Library/N64/Images/labels.db"
            },
            "compare": {
                "full_hash": True,
                "batch_size": 20
            }
        }
    
    def teardown_method(self):
        """
        测试后的清理
        """
        self.temp_dir.cleanup()
    
    def write_sync_json(self, data):
        """
        写入sync.json文件
        """
        with open(self.sync_json_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
    
    def test_load(self):
        """
        测试读取配置
        """
        self.write_sync_json(self.base_sync_json)
        spec = load_sync_json(self.sync_json_path)
        assert spec.paths.local == os.path.realpath(os.path.join(self.temp_dir.name, '.local', 'labels.db'))
        assert spec.paths.remote == '/media/sd/Library/N64/Images/labels.db'
        assert spec.compare.full_hash is True
        assert spec.compare.batch_size == 20
        assert spec.sync.verify_full_hash is True
    
    def test_defaults(self):
        """
        测试默认值
        """
        self.write_sync_json({"format": "LABELS_SYNC", "config_version": 1})
        spec = load_sync_json(self.sync_json_path)
        assert spec.paths.local is None
        assert spec.compare.full_hash is False
        assert spec.compare.batch_size == 50
    
    def test_missing_file(self):
        """
        测试文件不存在
        """
        with pytest.raises(ConfigError):
            load_sync_json(self.sync_json_path)
    
    def test_invalid_format(self):
        """
        测试format错误
        """
        data = dict(self.base_sync_json, format="LABELS_DB")
        self.write_sync_json(data)
        with pytest.raises(ConfigError):
            load_sync_json(self.sync_json_path)
    
    def test_invalid_batch_size(self):
        """
        测试batch_size错误
        """
        for value in (0, -5, "50", True):
            data = dict(self.base_sync_json, compare={"batch_size": value})
            self.write_sync_json(data)
            with pytest.raises(ConfigError):
                load_sync_json(self.sync_json_path)
    
    def test_invalid_json(self):
        """
        测试JSON格式错误
        """
        with open(self.sync_json_path, 'w', encoding='utf-8') as f:
            f.write('{"format": ')
        with pytest.raises(ConfigError):
            load_sync_json(self.sync_json_path)
