"""日志配置：按 BackdropConfig 给 `backdrop` 命名空间安装 handler。

说明：
    - 各模块统一用 logging.getLogger(__name__) 取 logger，都挂在 `backdrop.*` 下；
      入口层只需调用一次 `configure_logging(cfg)`。
    - 可重复调用：只替换本模块之前装上的 handler，调用方自己加的 handler 不受影响。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from backdrop.config import BackdropConfig

ROOT_LOGGER_NAME = "backdrop"
LOG_FORMAT = "[%(asctime)s][%(levelname)s][%(name)s] %(message)s"

_HANDLER_TAG = "_backdrop_handler"


def _level_value(level: str) -> int:
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def _install(root: logging.Logger, handler: logging.Handler, level: int, fmt: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(fmt)
    setattr(handler, _HANDLER_TAG, True)
    root.addHandler(handler)


def configure_logging(
    config: Optional[BackdropConfig] = None,
    *,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """按配置（重新）安装 `backdrop` 根 logger 的 handler。

    Args:
        config: 取其中的 log_level / log_file；为 None 时用默认配置。
        level: 覆盖控制台级别。
        log_file: 覆盖文件日志路径；文件日志固定为 DEBUG 级别。

    Returns:
        `backdrop` 根 logger。
    """

    cfg = config if config is not None else BackdropConfig()
    console_level = _level_value(level if level is not None else cfg.log_level)
    path = log_file if log_file is not None else cfg.log_file

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for h in list(root.handlers):
        if getattr(h, _HANDLER_TAG, False):
            root.removeHandler(h)
            h.close()

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S")
    _install(root, logging.StreamHandler(), console_level, fmt)
    root_level = console_level

    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        _install(root, logging.FileHandler(path, encoding="utf-8"), logging.DEBUG, fmt)
        root_level = logging.DEBUG

    root.setLevel(root_level)
    # handler 已装在 backdrop 根 logger 上，不再向全局 root 重复输出。
    root.propagate = False
    return root
