"""Configuration loading and validation for resumeup."""

from __future__ import annotations

import os  # os.environ 提供环境变量覆盖
from dataclasses import dataclass  # dataclass 用于定义结构化配置对象
from pathlib import Path  # Path 提供跨平台路径处理
from typing import Mapping

import yaml  # PyYAML 用于解析配置文件

from .constants import DEFAULT_AUDIT_DIR, DEFAULT_CHUNK_MB, DEFAULT_CONFIG_FILE, DEFAULT_TIMEOUT_SEC

CHUNK_ENCODINGS = ("multipart", "put", "post")

# 环境变量到 server 字段的映射
ENV_OVERRIDES = {
    "RESUMEUP_BASE_URL": "base_url",
    "RESUMEUP_API_KEY": "api_key",
    "RESUMEUP_TOKEN": "token",
    "RESUMEUP_PROJECT_ID": "project_id",
}


@dataclass(slots=True)
class ServerConfig:
    """远端上传服务的连接参数。"""

    base_url: str  # 服务根地址
    api_key: str | None = None  # X-API-Key 认证
    token: str | None = None  # Bearer token 认证
    project_id: str | None = None  # 默认项目 ID
    timeout_sec: float = DEFAULT_TIMEOUT_SEC  # 单次请求超时


@dataclass(slots=True)
class UploadConfig:
    """分块上传行为配置。"""

    chunk_mb: int = DEFAULT_CHUNK_MB  # 单块大小（MB）
    encoding: str = "multipart"  # 分块传输编码
    verify_checksum: bool = True  # 是否计算整文件摘要
    audit_log_dir: Path | None = None  # 审计日志目录，None 表示关闭

    @property
    def chunk_size(self) -> int:
        return self.chunk_mb * 1024 * 1024


@dataclass(slots=True)
class LoggingConfig:
    """日志配置。"""

    level: str  # 日志级别
    file: Path | None  # 日志文件


@dataclass(slots=True)
class ResumeUpConfig:
    """聚合所有配置段的顶层对象。"""

    server: ServerConfig
    upload: UploadConfig
    logging: LoggingConfig


def _load_yaml(path: Path) -> dict:
    """辅助函数：读取 YAML 文件并返回字典。"""
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}  # 空文件回退为空字典
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping")
    return data


def _resolve(base: Path, value: str | None) -> Path | None:
    if not value:
        return None
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else (base / candidate).resolve()


def build_config(raw: Mapping, *, base_dir: Path, environ: Mapping[str, str] | None = None) -> ResumeUpConfig:
    """由原始字典构建并校验配置对象。"""
    server_raw = dict(raw.get("server") or {})
    upload_raw = raw.get("upload") or {}
    logging_raw = raw.get("logging") or {}
    env = os.environ if environ is None else environ
    for env_name, field_name in ENV_OVERRIDES.items():  # 环境变量优先于文件
        if env.get(env_name):
            server_raw[field_name] = env[env_name]
    server = ServerConfig(
        base_url=(server_raw.get("base_url") or "").strip(),
        api_key=server_raw.get("api_key") or None,
        token=server_raw.get("token") or None,
        project_id=server_raw.get("project_id") or None,
        timeout_sec=float(server_raw.get("timeout_sec", DEFAULT_TIMEOUT_SEC)),
    )
    audit_dir = upload_raw.get("audit_log_dir", DEFAULT_AUDIT_DIR)
    upload = UploadConfig(
        chunk_mb=int(upload_raw.get("chunk_mb", DEFAULT_CHUNK_MB)),
        encoding=(upload_raw.get("encoding") or "multipart").lower(),
        verify_checksum=bool(upload_raw.get("verify_checksum", True)),
        audit_log_dir=_resolve(base_dir, audit_dir),
    )
    logging_config = LoggingConfig(
        level=logging_raw.get("level", "info"),
        file=_resolve(base_dir, logging_raw.get("file")),
    )
    if not server.base_url:
        raise ValueError("server.base_url must be set")
    if server.timeout_sec <= 0:
        raise ValueError("server.timeout_sec must be positive")
    if upload.chunk_mb <= 0:
        raise ValueError("upload.chunk_mb must be positive")
    if upload.encoding not in CHUNK_ENCODINGS:
        raise ValueError("upload.encoding must be one of multipart/put/post")
    return ResumeUpConfig(server=server, upload=upload, logging=logging_config)


def load_config(config_path: str | Path = DEFAULT_CONFIG_FILE) -> ResumeUpConfig:
    """加载并校验配置文件。"""
    path = Path(config_path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Config file {path} not found")
    return build_config(_load_yaml(path), base_dir=path.parent)
