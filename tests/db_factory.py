"""
测试用labels.db生成工具
"""

import struct

from labels_core.format.labels.header import LabelsHeader
from labels_core.format.labels.layout import Layout
from labels_core.pipeline.build_db import BuildDb


def make_payload(seed: int) -> bytes:
    """
    生成确定性的BGRA图片数据
    """
    return bytes((seed * 31 + i * 7) % 256 for i in range(Layout.IMAGE_DATA_SIZE))


def write_db(path, cart_ids, payload_for=make_payload):
    """
    按卡带ID升序生成labels.db，图片数据由卡带ID决定
    """
    BuildDb([(cart_id, payload_for(cart_id)) for cart_id in cart_ids]).build(str(path))


def write_raw_db(path, entries):
    """
    按给定顺序写入labels.db（不排序），entries为(卡带ID, BGRA数据)
    """
    data = bytearray([Layout.PADDING_FILL]) * Layout.file_size_for(len(entries))
    data[0:Layout.HEADER_SIZE] = LabelsHeader.pack()
    for i, (cart_id, payload) in enumerate(entries):
        struct.pack_into('<I', data, Layout.ID_TABLE_START + i * 4, cart_id)
        offset = Layout.slot_offset(i)
        data[offset:offset + len(payload)] = payload
    with open(path, 'wb') as f:
        f.write(data)


def patch_bytes(path, offset: int, data: bytes) -> None:
    """
    在文件指定偏移覆盖写入
    """
    with open(path, 'r+b') as f:
        f.seek(offset)
        f.write(data)


def read_bytes(path, offset: int, length: int) -> bytes:
    with open(path, 'rb') as f:
        f.seek(offset)
        return f.read(length)
