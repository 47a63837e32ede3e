"""配置加载。

支持 YAML 配置、环境变量占位符 `${VAR}` 展开，以及 .env/.env.local 自动加载。
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from stratforge.common.config.schema import MainConfig
from stratforge.common.errors import ConfigurationError


def _load_env_file(env_path: Path) -> None:
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _load_envs(cfg_path: Path) -> None:
    """加载配置文件所在目录下的 .env/.env.local（不覆盖已有环境变量）。"""
    for env_file in (cfg_path.parent / ".env", cfg_path.parent / ".env.local"):
        _load_env_file(env_file)


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            if var_name not in os.environ:
                raise ConfigurationError(f"Missing environment variable: {var_name}")
            return os.environ[var_name]

        return re.sub(r"\$\{([^}]+)\}", replacer, value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def build_config(raw: dict[str, Any] | None) -> MainConfig:
    """把原始 dict 校验为 `MainConfig`；pydantic 错误统一转为 ConfigurationError。"""
    try:
        return MainConfig.model_validate(raw or {})
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def load_config(path: str, load_env: bool = True, expand_env: bool = True) -> MainConfig:
    """从 YAML 读取并解析配置。

    Parameters
    ----------
    path:
        配置文件路径。
    load_env:
        是否自动加载 .env/.env.local。
    expand_env:
        是否展开 `${VAR}` 占位符。

    Returns
    -------
    MainConfig
        校验后的配置对象。

    Raises
    ------
    FileNotFoundError
        配置文件不存在。
    ConfigurationError
        字段非法、存在未知键或缺失环境变量。
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    if load_env:
        _load_envs(cfg_path)

    with cfg_path.open("r", encoding="utf-8") as f:
        raw_cfg = yaml.safe_load(f) or {}
    if not isinstance(raw_cfg, dict):
        raise ConfigurationError(f"Config root must be a mapping: {cfg_path}")

    if expand_env:
        raw_cfg = _expand_env(raw_cfg)
    return build_config(raw_cfg)
