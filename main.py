import sys
from pathlib import Path

# 未安装时从源码目录运行
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from labels_core.cli import main

if __name__ == '__main__':
    sys.exit(main())
