"""
轻量日志封装。

Notes
-----
`setup_logger` 会避免重复添加 handler，否则多次调用会出现重复日志。
未显式给出级别时读取环境变量 `STRATFORGE_LOG_LEVEL`（默认 INFO）。
"""

from __future__ import annotations

import logging
import os
import threading

_HANDLER_LOCK = threading.Lock()


def resolve_level(level: int | str | None) -> int:
    """把 "DEBUG"/"info"/10 等写法统一成 logging 级别整数。"""
    if level is None:
        level = os.environ.get("STRATFORGE_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(name: str = "stratforge", level: int | str | None = None) -> logging.Logger:
    """
    创建或获取命名 logger。

    Parameters
    ----------
    name:
        Logger 名称。
    level:
        日志级别；None 时读取环境变量。

    Returns
    -------
    logging.Logger
        已配置的 logger。
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level))
    logger.propagate = False

    # 线程池里的并发首次调用也只能挂一个 handler
    with _HANDLER_LOCK:
        has_stream = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
        if not has_stream:
            ch = logging.StreamHandler()
            fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s - %(message)s")
            ch.setFormatter(fmt)
            logger.addHandler(ch)

    return logger
