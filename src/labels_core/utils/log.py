import logging


def setup_logger(name: str) -> logging.Logger:
    """配置统一格式的logger，重复调用不会重复添加handler。"""
    logger = logging.getLogger(name)
    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s: %(message)s"))
        logger.addHandler(ch)
        logger.setLevel(logging.INFO)
    return logger
