from dataclasses import dataclass, field, asdict
from typing import Optional, Tuple

# 快速比较的结论
REASON_SIZE_MISMATCH = 'size_mismatch'
REASON_ID_TABLE_MISMATCH = 'id_table_mismatch'
REASON_UNKNOWN = 'unknown'

# 进度阶段
PHASE_COMPARING = 'comparing'
PHASE_INDEX_READ = 'index_read'
PHASE_ID_COMPARE = 'id_compare'
PHASE_IMAGE_COMPARE = 'image_compare'
PHASE_SYNCING = 'syncing'
PHASE_COPYING = 'copying'

# 合并时已存在条目的处理方式
MERGE_OVERWRITE = 'overwrite'
MERGE_SKIP = 'skip'


@dataclass(frozen=True)
class QuickCompareResult:
    """
    快速比较结果
    """
    identical: bool
    reason: Optional[str] = None
    local_size: int = 0
    other_size: int = 0
    local_entry_count: int = 0
    other_entry_count: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class CompareBreakdown:
    index_read_ms: float = 0.0
    id_compare_ms: float = 0.0
    image_compare_ms: float = 0.0


@dataclass(frozen=True)
class DetailedCompareResult:
    """
    详细比较结果，ID均为8位小写十六进制
    """
    identical: bool
    only_in_local: Tuple[str, ...] = ()
    only_in_other: Tuple[str, ...] = ()
    modified: Tuple[str, ...] = ()
    total_compared: int = 0
    full_hash: bool = False
    duration_ms: float = 0.0
    breakdown: CompareBreakdown = field(default_factory=CompareBreakdown)

    @property
    def structural(self) -> bool:
        """ID集合是否不同"""
        return bool(self.only_in_local or self.only_in_other)

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ('only_in_local', 'only_in_other', 'modified'):
            data[key] = list(data[key])
        return data


@dataclass(frozen=True)
class SyncProgress:
    """
    进度回调参数
    """
    phase: str
    current: int
    total: int
    current_cart_id: Optional[str] = None


@dataclass(frozen=True)
class SyncBreakdown:
    compare_ms: float = 0.0
    write_ms: float = 0.0


@dataclass(frozen=True)
class SyncResult:
    """
    同步结果
    """
    success: bool
    entries_updated: int = 0
    bytes_written: int = 0
    skipped: Tuple[str, ...] = ()
    mode: str = 'partial'
    duration_ms: float = 0.0
    breakdown: SyncBreakdown = field(default_factory=SyncBreakdown)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['skipped'] = list(data['skipped'])
        return data


@dataclass(frozen=True)
class MergeResult:
    """
    合并结果

    added/updated/skipped 统计的是导入文件中的条目。
    """
    mode: str
    added: int = 0
    updated: int = 0
    skipped: int = 0
    entry_count: int = 0
    file_size: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
