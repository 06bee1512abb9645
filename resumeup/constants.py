"""resumeup 项目使用的常量定义。"""

DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_AUDIT_DIR = "logs/uploads"
DEFAULT_CHUNK_MB = 5
DEFAULT_CHUNK_SIZE = DEFAULT_CHUNK_MB * 1024 * 1024
DEFAULT_TIMEOUT_SEC = 60.0
UPLOAD_API_PREFIX = "/api/upload"
