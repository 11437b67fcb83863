import hashlib


def md5_hex(*chunks: bytes) -> str:
    """
    计算MD5摘要

    Args:
        *chunks (bytes): 依次参与计算的数据

    Returns:
        str: 十六进制摘要
    """
    h = hashlib.md5()
    for chunk in chunks:
        h.update(chunk)
    return h.hexdigest()
