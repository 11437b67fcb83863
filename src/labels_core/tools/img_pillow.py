import io
from pathlib import Path
from typing import Union

from PIL import Image, ImageOps

from labels_core.format.labels.layout import Layout


def _hex_to_rgb(hex_color: str) -> tuple:
    """
    将十六进制颜色转换为RGB元组

    Args:
        hex_color (str): 十六进制颜色字符串，如'#FF0000'

    Returns:
        tuple: RGB元组
    """
    hex_color = hex_color.lstrip('#')
    if len(hex_color) == 3:
        hex_color = ''.join([c*2 for c in hex_color])
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def bgra_to_rgba(data: bytes) -> bytes:
    """
    BGRA像素数据转为RGBA（交换B和R通道）
    """
    out = bytearray(data)
    out[0::4] = data[2::4]
    out[2::4] = data[0::4]
    return bytes(out)


def rgba_to_bgra(data: bytes) -> bytes:
    """
    RGBA像素数据转为BGRA（交换R和B通道）
    """
    # 交换是对称的
    return bgra_to_rgba(data)


def encode_png(bgra: bytes) -> bytes:
    """
    将槽位中的BGRA图片数据编码为PNG

    Args:
        bgra (bytes): IMAGE_DATA_SIZE字节的BGRA数据

    Returns:
        bytes: PNG数据
    """
    if len(bgra) != Layout.IMAGE_DATA_SIZE:
        raise ValueError(f"Invalid BGRA data size: {len(bgra)}, expected {Layout.IMAGE_DATA_SIZE}")

    img = Image.frombytes('RGBA', (Layout.IMAGE_WIDTH, Layout.IMAGE_HEIGHT), bgra_to_rgba(bgra))
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


def prepare_image(image: Union[str, Path, bytes], mode: str = 'cover', background: str = '#000000') -> bytes:
    """
    处理图片并转换为可直接写入槽位的BGRA数据

    Args:
        image (Union[str, Path, bytes]): 图片路径或图片文件内容
        mode (str): 缩放模式，'cover'或'contain'
        background (str): 背景颜色，仅在'contain'模式下使用

    Returns:
        bytes: IMAGE_DATA_SIZE字节的BGRA数据
    """
    width, height = Layout.IMAGE_WIDTH, Layout.IMAGE_HEIGHT
    source = io.BytesIO(image) if isinstance(image, (bytes, bytearray)) else image

    with Image.open(source) as img:
        # 转换为RGBA模式（保留或添加alpha通道）
        if img.mode != 'RGBA':
            img = img.convert('RGBA')

        if mode == 'cover':
            # 等比缩放到至少覆盖目标尺寸，然后居中裁剪
            img = ImageOps.fit(img, (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))
        elif mode == 'contain':
            # 等比缩放到不超过目标尺寸，居中放在背景上
            img = img.copy()
            img.thumbnail((width, height), Image.LANCZOS)
            bg = Image.new('RGBA', (width, height), _hex_to_rgb(background) + (255,))
            bg.paste(img, ((width - img.width) // 2, (height - img.height) // 2), img)
            img = bg
        else:
            raise ValueError(f"Invalid mode: {mode}")

        # 确保尺寸正确
        if img.width != width or img.height != height:
            raise ValueError(f"Image resizing failed: expected {width}x{height}, got {img.width}x{img.height}")

        raw = rgba_to_bgra(img.tobytes())

    # 验证数据长度
    if len(raw) != Layout.IMAGE_DATA_SIZE:
        raise ValueError(f"Raw data length mismatch: expected {Layout.IMAGE_DATA_SIZE}, got {len(raw)}")

    return raw
