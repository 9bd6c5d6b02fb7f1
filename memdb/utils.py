# utils.py
import logging

LOG_FORMAT = '[%(asctime)s]-%(levelname)s- %(message)s'
LOG_DATEFMT = '%H:%M:%S'

# 这些库在 DEBUG 级别下输出过多
NOISY_LOGGERS = ("matplotlib", "PIL")


def setup_logging(level: str = "INFO"):
    """配置全局日志记录器，日志写入 stderr，stdout 只留给渲染结果"""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_logger.level))

    # 已有处理器时只调整级别
    if root_logger.hasHandlers():
        return

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root_logger.addHandler(console_handler)
