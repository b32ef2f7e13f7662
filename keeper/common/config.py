"""
Configuration Management for Knowledge Keeper

Loads configuration from ~/.keeper/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("keeper.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".keeper"
CONFIG_PATH = CONFIG_DIR / "config.json"
DATA_DIR = CONFIG_DIR / "data"
UPLOADS_DIR = CONFIG_DIR / "uploads"

DEFAULT_DB_PATH = str(DATA_DIR / "knowledge.db")
DEFAULT_ALLOWED_TYPES = [".pst", ".txt", ".pdf", ".doc", ".docx"]


@dataclass
class StoreConfig:
    """SQLite knowledge store configuration"""
    db_path: str = DEFAULT_DB_PATH


@dataclass
class UploadConfig:
    """Upload limits and storage location"""
    upload_dir: str = str(UPLOADS_DIR)
    max_file_size: int = 100 * 1024 * 1024  # 100MB
    max_files: int = 10
    allowed_types: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_TYPES))


@dataclass
class RetrieverConfig:
    """Retrieval pipeline configuration"""
    keyword_limit: int = 5  # rows per keyword search, before global ranking
    top_results: int = 3
    document_results: int = 2
    search_timeout: float = 5.0  # seconds per keyword search
    request_timeout: float = 15.0  # seconds for all keyword searches of one turn


@dataclass
class ServerConfig:
    """HTTP and MCP server configuration"""
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False
    log_level: str = "INFO"
    mcp_server_name: str = "knowledge_keeper"


@dataclass
class KeeperConfig:
    """Main Knowledge Keeper configuration"""
    store: StoreConfig = field(default_factory=StoreConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    return StoreConfig(
        db_path=store_data.get("db_path", DEFAULT_DB_PATH),
    )


def _parse_upload_config(data: dict) -> UploadConfig:
    """Parse upload section from config dict"""
    upload_data = data.get("upload", {})
    return UploadConfig(
        upload_dir=upload_data.get("upload_dir", str(UPLOADS_DIR)),
        max_file_size=upload_data.get("max_file_size", 100 * 1024 * 1024),
        max_files=upload_data.get("max_files", 10),
        allowed_types=[
            t.lower() for t in upload_data.get("allowed_types", DEFAULT_ALLOWED_TYPES)
        ],
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        keyword_limit=retriever_data.get("keyword_limit", 5),
        top_results=retriever_data.get("top_results", 3),
        document_results=retriever_data.get("document_results", 2),
        search_timeout=retriever_data.get("search_timeout", 5.0),
        request_timeout=retriever_data.get("request_timeout", 15.0),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=server_data.get("port", 3001),
        debug=server_data.get("debug", False),
        log_level=server_data.get("log_level", "INFO"),
        mcp_server_name=server_data.get("mcp_server_name", "knowledge_keeper"),
    )


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


# env var -> (section, attribute, cast). Later entries win over earlier ones.
_ENV_MAP = [
    ("DATABASE_PATH", "store", "db_path", str),
    ("KEEPER_DB_PATH", "store", "db_path", str),
    ("UPLOAD_PATH", "upload", "upload_dir", str),
    ("KEEPER_UPLOAD_DIR", "upload", "upload_dir", str),
    ("MAX_FILE_SIZE", "upload", "max_file_size", int),
    ("MAX_FILES", "upload", "max_files", int),
    ("KEEPER_SEARCH_TIMEOUT", "retriever", "search_timeout", float),
    ("KEEPER_REQUEST_TIMEOUT", "retriever", "request_timeout", float),
    ("KEEPER_HOST", "server", "host", str),
    ("PORT", "server", "port", int),
    ("KEEPER_PORT", "server", "port", int),
    ("KEEPER_DEBUG", "server", "debug", _as_bool),
    ("LOG_LEVEL", "server", "log_level", str.upper),
]


def load_config() -> KeeperConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.keeper/config.json)
    3. Default values
    """
    config = KeeperConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.store = _parse_store_config(data)
            config.upload = _parse_upload_config(data)
            config.retriever = _parse_retriever_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    for env_var, section, attr, cast in _ENV_MAP:
        val = os.getenv(env_var)
        if not val:
            continue
        try:
            setattr(getattr(config, section), attr, cast(val))
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", env_var, val)

    return config


def save_config(config: KeeperConfig) -> None:
    """Save configuration to file."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "db_path": config.store.db_path,
        },
        "upload": {
            "upload_dir": config.upload.upload_dir,
            "max_file_size": config.upload.max_file_size,
            "max_files": config.upload.max_files,
            "allowed_types": config.upload.allowed_types,
        },
        "retriever": {
            "keyword_limit": config.retriever.keyword_limit,
            "top_results": config.retriever.top_results,
            "document_results": config.retriever.document_results,
            "search_timeout": config.retriever.search_timeout,
            "request_timeout": config.retriever.request_timeout,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "debug": config.server.debug,
            "log_level": config.server.log_level,
            "mcp_server_name": config.server.mcp_server_name,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories(config: KeeperConfig) -> None:
    """Ensure data and upload directories exist"""
    if config.store.db_path != ":memory:":
        Path(config.store.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    Path(config.upload.upload_dir).expanduser().mkdir(parents=True, exist_ok=True)
