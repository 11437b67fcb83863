import json
from pathlib import Path
from labels_core.config.sync_spec import SyncSpec, PathSpec, CompareSpec, SyncOptions
from labels_core.domain.errors import ConfigError
from labels_core.utils.path import resolve_relative_path

def load_sync_json(sync_json_path: str) -> SyncSpec:
    """
    读取并校验sync.json文件，返回SyncSpec对象
    
    Args:
        sync_json_path (str): sync.json文件路径
    
    Returns:
        SyncSpec: 校验后的配置对象
    
    Raises:
        ConfigError: 配置错误时抛出
    """
    # 读取文件
    path = Path(sync_json_path)
    if not path.exists():
        raise ConfigError(f"File not found: {sync_json_path}")
    
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {sync_json_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError("top level must be an object")
    
    # 校验顶层必填字段
    if data.get('format') != 'LABELS_SYNC':
        raise ConfigError('format must be LABELS_SYNC')

    if data.get('config_version') != 1:
        raise ConfigError('config_version must be 1')

    # 解析paths字段，相对路径相对于sync.json所在目录
    paths_data = data.get('paths', {})
    paths = PathSpec()
    for key in ('local', 'remote'):
        value = paths_data.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value:
            raise ConfigError(f"paths.{key} must be a non-empty string")
        setattr(paths, key, str(resolve_relative_path(value, sync_json_path)))

    # 解析compare字段
    compare_data = data.get('compare', {})
    full_hash = compare_data.get('full_hash', False)
    if not isinstance(full_hash, bool):
        raise ConfigError("compare.full_hash must be a boolean")

    batch_size = compare_data.get('batch_size', 50)
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
        raise ConfigError("compare.batch_size must be a positive integer")

    compare = CompareSpec(full_hash=full_hash, batch_size=batch_size)

    # 解析sync字段
    sync_data = data.get('sync', {})
    verify_full_hash = sync_data.get('verify_full_hash', True)
    if not isinstance(verify_full_hash, bool):
        raise ConfigError("sync.verify_full_hash must be a boolean")

    return SyncSpec(
        paths=paths,
        compare=compare,
        sync=SyncOptions(verify_full_hash=verify_full_hash),
        config_version=data.get('config_version', 1),
        sync_json_path=sync_json_path
    )
