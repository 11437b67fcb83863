class Layout:
    """
    labels.db 文件几何布局

    文件由三个固定区域组成：
        [0, ID_TABLE_START)          Header
        [ID_TABLE_START, DATA_START) 卡带ID表（u32 little-endian，每槽位一个）
        [DATA_START, EOF)            图片槽位，每个 IMAGE_SLOT_SIZE 字节
    """

    # Header
    HEADER_SIZE = 0x100

    # 区域偏移量
    ID_TABLE_START = 0x100
    DATA_START = 0x4100

    # 图片参数（BGRA）
    IMAGE_WIDTH = 74
    IMAGE_HEIGHT = 86
    BYTES_PER_PIXEL = 4
    IMAGE_DATA_SIZE = IMAGE_WIDTH * IMAGE_HEIGHT * BYTES_PER_PIXEL  # 25456

    # 槽位
    IMAGE_SLOT_SIZE = 25600
    SLOT_PADDING = IMAGE_SLOT_SIZE - IMAGE_DATA_SIZE  # 144
    PADDING_FILL = 0xFF

    # ID表
    ID_WORD_SIZE = 4
    END_OF_TABLE = 0xFFFFFFFF
    MAX_ENTRIES = (DATA_START - ID_TABLE_START) // ID_WORD_SIZE  # 4096

    @classmethod
    def physical_entry_count(cls, file_size: int) -> int:
        """
        根据文件大小计算文件最多可容纳的槽位数

        Args:
            file_size (int): 文件大小

        Returns:
            int: 槽位数，文件小于DATA_START时为0
        """
        data_size = file_size - cls.DATA_START
        if data_size < 0:
            return 0
        return data_size // cls.IMAGE_SLOT_SIZE

    @classmethod
    def slot_offset(cls, i: int) -> int:
        """
        计算槽位偏移量

        Args:
            i (int): 槽位索引

        Returns:
            int: 槽位在文件中的偏移量
        """
        return cls.DATA_START + i * cls.IMAGE_SLOT_SIZE

    @classmethod
    def id_table_size(cls, file_size: int) -> int:
        """
        计算需要读取的ID表字节数（按物理槽位数）
        """
        return cls.physical_entry_count(file_size) * cls.ID_WORD_SIZE

    @classmethod
    def file_size_for(cls, entry_count: int) -> int:
        return cls.DATA_START + entry_count * cls.IMAGE_SLOT_SIZE


def cart_id_to_hex(cart_id: int) -> str:
    """
    卡带ID转为8位小写十六进制字符串

    Args:
        cart_id (int): 32位卡带ID

    Returns:
        str: 如'b393776d'
    """
    return f"{cart_id & 0xFFFFFFFF:08x}"


def cart_id_from_hex(cart_id_hex: str) -> int:
    """
    解析卡带ID字符串，允许'0x'前缀

    Args:
        cart_id_hex (str): 十六进制字符串

    Returns:
        int: 32位卡带ID

    Raises:
        ValueError: 格式错误或超出32位范围时抛出
    """
    text = cart_id_hex.strip().lower()
    if text.startswith('0x'):
        text = text[2:]
    if not text or len(text) > 8:
        raise ValueError(f"Invalid cart_id: {cart_id_hex}")
    try:
        return int(text, 16)
    except ValueError:
        raise ValueError(f"Invalid cart_id: {cart_id_hex}")
