"""Load cleanup settings from the environment and the optional policy file."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from curriculo_cleanup.errors import ConfigurationError
from curriculo_cleanup.log import get_logger

log = get_logger(__name__)

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = PROJECT_ROOT / "config"
POLICY_PATH: Path = CONFIG_DIR / "cleanup.yaml"
DEFAULT_SCRATCH_DIR: Path = PROJECT_ROOT / "temp"

REQUIRED_KEYS: tuple[str, ...] = ("GITHUB_USER", "REPO_NAME", "BRANCH", "TOKEN")

DEFAULT_COMMIT_MESSAGES: dict[str, str] = {
    "index": "Limpeza automática de duplicatas e registros antigos",
    "delete": "Remove arquivo duplicado ou antigo de {nome}",
}

# env var -> (policy key, type, default)
_TUNABLES: dict[str, tuple[str, type, Any]] = {
    "RETENTION_MONTHS": ("retention_months", int, 2),
    "DELETE_WORKERS": ("delete_workers", int, 4),
    "DELETE_INTERVAL": ("delete_interval", float, 0.1),
    "HTTP_TIMEOUT": ("http_timeout", float, 15.0),
    "RUN_TIMEOUT": ("run_timeout", float, 600.0),
}


@dataclass(frozen=True)
class Settings:
    github_user: str
    repo_name: str
    branch: str
    token: str = field(repr=False)
    curriculo_dir: str = ""
    index_path: str = "dados.json"
    scratch_dir: Path = DEFAULT_SCRATCH_DIR
    retention_months: int = 2
    delete_workers: int = 4
    delete_interval: float = 0.1
    http_timeout: float = 15.0
    run_timeout: float = 600.0
    api_url: str = "https://api.github.com"
    commit_messages: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COMMIT_MESSAGES))

    @property
    def repo_slug(self) -> str:
        return f"{self.github_user}/{self.repo_name}"


def load_policy(path: Path = POLICY_PATH) -> dict[str, Any]:
    """Read the YAML policy file; a missing file means all defaults."""
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path.name}: expected a mapping at top level")
    return data


def _coerce(name: str, value: Any, kind: type) -> Any:
    try:
        result = kind(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a {kind.__name__}, got {value!r}") from None
    if result < 0 or (kind is int and result == 0):
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return result


def _commit_messages(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ConfigurationError("commit_messages must map names to message strings")
    return value


def load_settings(
    env: Mapping[str, str] | None = None,
    policy_path: Path = POLICY_PATH,
) -> Settings:
    """Build Settings once at startup. Environment wins over the policy file."""
    if env is None:
        load_dotenv(PROJECT_ROOT / ".env")
        env = os.environ

    def _get(key: str) -> str:
        return (env.get(key) or "").strip()

    missing = [k for k in REQUIRED_KEYS if not _get(k)]
    if missing:
        raise ConfigurationError(
            "Missing required environment variable(s): " + ", ".join(missing)
        )

    policy = load_policy(policy_path)

    tunables: dict[str, Any] = {}
    for env_key, (policy_key, kind, default) in _TUNABLES.items():
        raw = _get(env_key) or policy.get(policy_key, default)
        tunables[policy_key] = _coerce(env_key, raw, kind)

    messages = dict(DEFAULT_COMMIT_MESSAGES)
    messages.update(_commit_messages(policy.get("commit_messages")))

    scratch = _get("SCRATCH_DIR") or policy.get("scratch_dir")
    index_path = (_get("INDEX_PATH") or policy.get("index_path") or "dados.json").strip("/")

    settings = Settings(
        github_user=_get("GITHUB_USER"),
        repo_name=_get("REPO_NAME"),
        branch=_get("BRANCH"),
        token=_get("TOKEN"),
        curriculo_dir=_get("CURRICULO_DIR").strip("/"),
        index_path=index_path,
        scratch_dir=Path(scratch) if scratch else DEFAULT_SCRATCH_DIR,
        api_url=(_get("GITHUB_API_URL") or "https://api.github.com").rstrip("/"),
        commit_messages=messages,
        **tunables,
    )
    log.debug("Loaded settings for %s@%s", settings.repo_slug, settings.branch)
    return settings


def ensure_scratch_dir(settings: Settings) -> Path:
    settings.scratch_dir.mkdir(parents=True, exist_ok=True)
    return settings.scratch_dir
