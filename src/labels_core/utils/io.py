import asyncio
import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path


def atomic_write(path: str, data: bytes) -> None:
    """
    原子写入文件

    Args:
        path (str): 输出文件路径
        data (bytes): 要写入的数据
    """
    # 获取目录
    path_obj = Path(path)
    dir_path = path_obj.parent

    if dir_path and not dir_path.exists():
        dir_path.mkdir(parents=True, exist_ok=True)

    # 创建临时文件
    with tempfile.NamedTemporaryFile(dir=dir_path, delete=False) as tmp:
        tmp.write(data)
        tmp_path = tmp.name

    try:
        # 重命名临时文件到目标路径
        os.replace(tmp_path, path)
    except Exception:
        # 发生错误时删除临时文件
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_copy(src: str, dst: str) -> int:
    """
    原子复制整个文件（先复制到同目录临时文件再重命名）

    Args:
        src (str): 源文件路径
        dst (str): 目标文件路径

    Returns:
        int: 写入的字节数
    """
    dst_obj = Path(dst)
    dir_path = dst_obj.parent

    if dir_path and not dir_path.exists():
        dir_path.mkdir(parents=True, exist_ok=True)

    with open(src, 'rb') as fsrc, tempfile.NamedTemporaryFile(dir=dir_path, delete=False) as tmp:
        shutil.copyfileobj(fsrc, tmp)
        tmp_path = tmp.name

    try:
        os.replace(tmp_path, dst)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    return os.path.getsize(dst)


class SlotFile:
    """
    随机读写文件句柄

    在一次比较/同步过程中只打开一次，所有阻塞IO通过asyncio.to_thread执行。
    读写都是按偏移的pread/pwrite，不依赖文件位置，同一句柄上的多个读取可以同时进行。
    """

    def __init__(self, path: str, fd: int, size: int, writable: bool):
        self.path = path
        self.size = size
        self.writable = writable
        self._fd = fd

    @classmethod
    @asynccontextmanager
    async def open(cls, path: str, writable: bool = False):
        """
        打开文件，退出时保证关闭

        Args:
            path (str): 文件路径
            writable (bool): 是否以读写方式打开
        """
        flags = (os.O_RDWR if writable else os.O_RDONLY) | getattr(os, 'O_BINARY', 0)
        fd = await asyncio.to_thread(os.open, path, flags)
        try:
            size = (await asyncio.to_thread(os.fstat, fd)).st_size
            yield cls(str(path), fd, size, writable)
        finally:
            await asyncio.to_thread(os.close, fd)

    def _read_at(self, offset: int, length: int) -> bytes:
        chunks = []
        while length > 0:
            chunk = os.pread(self._fd, length, offset)
            if not chunk:
                break
            chunks.append(chunk)
            offset += len(chunk)
            length -= len(chunk)
        return b''.join(chunks)

    def _write_at(self, offset: int, data: bytes) -> int:
        view = memoryview(data)
        written = 0
        while written < len(view):
            written += os.pwrite(self._fd, view[written:], offset + written)
        return written

    async def read_at(self, offset: int, length: int) -> bytes:
        """
        从指定偏移读取数据，文件末尾之后的部分不返回

        Args:
            offset (int): 偏移量
            length (int): 长度

        Returns:
            bytes: 读取到的数据
        """
        return await asyncio.to_thread(self._read_at, offset, length)

    async def write_at(self, offset: int, data: bytes) -> int:
        """
        在指定偏移写入数据

        Args:
            offset (int): 偏移量
            data (bytes): 数据

        Returns:
            int: 写入的字节数
        """
        if not self.writable:
            raise PermissionError(f"{self.path} is opened read-only")
        return await asyncio.to_thread(self._write_at, offset, data)


async def file_size(path: str) -> int:
    return (await asyncio.to_thread(os.stat, path)).st_size
