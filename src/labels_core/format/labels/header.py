import struct
from typing import Optional, Tuple

from labels_core.format.labels.layout import Layout


class LabelsHeader:
    """
    labels.db Header 实现
    """

    HEADER_SIZE = Layout.HEADER_SIZE

    # 固定常量
    MAGIC_BYTE = 0x07
    IDENTIFIER = b"Analogue-Co"
    FILE_TYPE = b"Analogue-3D.labels"
    VERSION = 0x00020000

    # 字段偏移量
    OFFSET_MAGIC = 0x00
    OFFSET_IDENTIFIER = 0x01
    OFFSET_FILE_TYPE = 0x20
    OFFSET_VERSION = 0x40

    @classmethod
    def pack(cls) -> bytes:
        """
        序列化Header

        Returns:
            bytes: 256字节的header
        """
        header = bytearray(cls.HEADER_SIZE)

        # 写入magic
        header[cls.OFFSET_MAGIC] = cls.MAGIC_BYTE

        # 写入identifier
        header[cls.OFFSET_IDENTIFIER:cls.OFFSET_IDENTIFIER + len(cls.IDENTIFIER)] = cls.IDENTIFIER

        # 写入file type
        header[cls.OFFSET_FILE_TYPE:cls.OFFSET_FILE_TYPE + len(cls.FILE_TYPE)] = cls.FILE_TYPE

        # 写入version (u32, little-endian)
        struct.pack_into('<I', header, cls.OFFSET_VERSION, cls.VERSION)

        return bytes(header)

    @classmethod
    def verify(cls, data: bytes) -> Tuple[bool, Optional[str]]:
        """
        校验Header，不抛异常

        Args:
            data (bytes): 至少包含header区域的数据

        Returns:
            Tuple[bool, Optional[str]]: (是否有效, 错误信息)
        """
        if len(data) < cls.HEADER_SIZE:
            return False, f"File too small: {len(data)} bytes, need at least {cls.HEADER_SIZE}"

        magic = data[cls.OFFSET_MAGIC]
        if magic != cls.MAGIC_BYTE:
            return False, f"Invalid magic byte: 0x{magic:02x}, expected 0x{cls.MAGIC_BYTE:02x}"

        identifier = bytes(data[cls.OFFSET_IDENTIFIER:cls.OFFSET_IDENTIFIER + len(cls.IDENTIFIER)])
        if identifier != cls.IDENTIFIER:
            return False, f"Invalid identifier: {identifier!r}, expected {cls.IDENTIFIER!r}"

        file_type = bytes(data[cls.OFFSET_FILE_TYPE:cls.OFFSET_FILE_TYPE + len(cls.FILE_TYPE)])
        if file_type != cls.FILE_TYPE:
            return False, f"Invalid file type: {file_type!r}, expected {cls.FILE_TYPE!r}"

        return True, None

    @classmethod
    def inspect(cls, data: bytes) -> dict:
        """
        解析Header字段

        Args:
            data (bytes): header数据

        Returns:
            dict: 字段信息
        """
        valid, error = cls.verify(data)
        info = {
            'valid': valid,
            'error': error,
            'magic': None,
            'identifier': None,
            'file_type': None,
            'version': None,
        }
        if len(data) < cls.HEADER_SIZE:
            return info

        info['magic'] = data[cls.OFFSET_MAGIC]
        info['identifier'] = bytes(data[cls.OFFSET_IDENTIFIER:cls.OFFSET_IDENTIFIER + len(cls.IDENTIFIER)]).decode('ascii', errors='replace')
        info['file_type'] = bytes(data[cls.OFFSET_FILE_TYPE:cls.OFFSET_FILE_TYPE + len(cls.FILE_TYPE)]).decode('ascii', errors='replace')
        version = struct.unpack_from('<I', data, cls.OFFSET_VERSION)[0]
        info['version'] = f"{version >> 16}.{version & 0xFFFF}"
        return info
