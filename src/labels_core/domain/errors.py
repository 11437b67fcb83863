class LabelsDbError(Exception):
    """
    labels.db 相关错误基类
    """
    pass

class ConfigError(LabelsDbError):
    """
    配置错误异常
    """
    pass

class PackError(LabelsDbError):
    """
    构建labels.db时的输入错误
    """
    pass

class FormatError(LabelsDbError):
    """
    文件格式错误异常
    """
    pass

class SyncError(LabelsDbError):
    """
    同步错误异常
    """
    pass

class StructuralDiffError(SyncError):
    """
    两个文件的卡带ID集合不同，无法进行部分同步
    """

    def __init__(self, only_in_source, only_in_dest):
        self.only_in_source = list(only_in_source)
        self.only_in_dest = list(only_in_dest)
        super().__init__(
            f"ID sets differ ({len(self.only_in_source)} only in source, "
            f"{len(self.only_in_dest)} only in destination); a full copy is required"
        )

class OperationCancelled(SyncError):
    """
    操作被取消
    """
    pass
