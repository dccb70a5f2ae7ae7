"""
Configuration
=============
Every tunable value (API endpoint, refund pricing, security rules, storage
paths, LLM provider) is read from the environment here. Nothing in the tool,
policy or gate logic hardcodes these values.

load_settings() builds a fresh Settings each time it is called; callers keep
the instance on their AppContext rather than importing a module-level global.
"""
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://ghibliflowstudio.com/api"
DEFAULT_SESSION_STORE_PATH = os.path.join(".aftersales", "sessions.json")
DEFAULT_SENSITIVE_PATHS = (
    "/etc/", "/usr/", "/var/", "/bin/", "/sbin/",
    "~/.ssh/", "~/.aws/", "~/.kube/",
    "package.json", "package-lock.json", "pnpm-lock.yaml",
    ".env", ".env.local", ".env.production",
)


def _safe_int(env_var: str, default: str) -> int:
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid integer for {env_var}: {raw!r}") from None


def _safe_float(env_var: str, default: str) -> float:
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid float for {env_var}: {raw!r}") from None


def _int_set(env_var: str, default: str) -> frozenset[int]:
    """Parse a comma-separated list of integers, e.g. "10,20,100"."""
    raw = os.getenv(env_var, default)
    try:
        return frozenset(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValueError(f"Invalid integer list for {env_var}: {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    # Remote access-code service
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str | None = None
    request_timeout: float = 10.0

    # Refund policy
    price_per_use: float = 0.5
    default_initial_uses: int = 10
    refundable_tiers: frozenset[int] = frozenset({10, 20, 100})

    # Tool security gate
    allowed_domain: str = "ghibliflowstudio.com"
    allowed_file_root: str = os.path.join(os.getcwd(), "agent")
    sensitive_extensions: frozenset[str] = frozenset({".js", ".ts", ".json"})
    sensitive_paths: tuple[str, ...] = DEFAULT_SENSITIVE_PATHS

    # Persistence
    session_store_path: str = DEFAULT_SESSION_STORE_PATH
    checkpoint_db_path: str = "agent_checkpoints.db"

    # Agent runtime
    max_turns: int = 5
    llm_provider: str = ""

    log_level: str = "INFO"


def _validate(settings: Settings) -> None:
    if settings.request_timeout <= 0:
        raise ValueError(
            f"ACCESS_CODE_API_TIMEOUT must be > 0, got {settings.request_timeout}"
        )
    if settings.price_per_use < 0:
        raise ValueError(f"PRICE_PER_USE must be >= 0, got {settings.price_per_use}")
    if settings.default_initial_uses < 1:
        raise ValueError(
            f"DEFAULT_INITIAL_USES must be >= 1, got {settings.default_initial_uses}"
        )
    if not settings.refundable_tiers:
        raise ValueError("REFUNDABLE_TIERS must name at least one tier")
    if any(tier < 0 for tier in settings.refundable_tiers):
        raise ValueError(
            f"REFUNDABLE_TIERS must be non-negative, got {sorted(settings.refundable_tiers)}"
        )
    if settings.max_turns < 1:
        raise ValueError(f"AGENT_MAX_TURNS must be >= 1, got {settings.max_turns}")


def load_settings(env_file: str | None = None) -> Settings:
    """
    Load .env (if present) and build a validated Settings from the environment.

    Raises:
        ValueError: a variable is set but cannot be parsed or is out of range.
    """
    load_dotenv(env_file)

    settings = Settings(
        api_base_url=os.getenv("GHIBLI_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
        api_token=os.getenv("GHIBLI_API_TOKEN") or None,
        request_timeout=_safe_float("ACCESS_CODE_API_TIMEOUT", "10"),
        price_per_use=_safe_float("PRICE_PER_USE", "0.5"),
        default_initial_uses=_safe_int("DEFAULT_INITIAL_USES", "10"),
        refundable_tiers=_int_set("REFUNDABLE_TIERS", "10,20,100"),
        allowed_domain=os.getenv("ALLOWED_DOMAIN", "ghibliflowstudio.com").lower(),
        allowed_file_root=os.getenv(
            "ALLOWED_FILE_ROOT", os.path.join(os.getcwd(), "agent")
        ),
        session_store_path=os.getenv("SESSION_STORE_PATH", DEFAULT_SESSION_STORE_PATH),
        checkpoint_db_path=os.getenv("CHECKPOINT_DB_PATH", "agent_checkpoints.db"),
        max_turns=_safe_int("AGENT_MAX_TURNS", "5"),
        llm_provider=os.getenv("LLM_PROVIDER", "").lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
    _validate(settings)
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
