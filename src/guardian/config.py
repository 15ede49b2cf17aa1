import os
import re
import warnings
from pathlib import Path
from typing import Optional, Dict
from dataclasses import dataclass, field


def safe_int(value: Optional[str], default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    if value is None:
        return default
    try:
        result = int(value)
        if min_val is not None and result < min_val:
            warnings.warn(
                f"Value {result} is below minimum {min_val}, using default {default}",
                RuntimeWarning,
                stacklevel=2
            )
            return default
        if max_val is not None and result > max_val:
            warnings.warn(
                f"Value {result} exceeds maximum {max_val}, using default {default}",
                RuntimeWarning,
                stacklevel=2
            )
            return default
        return result
    except (ValueError, TypeError):
        return default


def safe_float(value: Optional[str], default: float, min_val: Optional[float] = None, max_val: Optional[float] = None) -> float:
    if value is None:
        return default
    try:
        result = float(value)
        if min_val is not None and result < min_val:
            warnings.warn(
                f"Value {result} is below minimum {min_val}, using default {default}",
                RuntimeWarning,
                stacklevel=2
            )
            return default
        if max_val is not None and result > max_val:
            warnings.warn(
                f"Value {result} exceeds maximum {max_val}, using default {default}",
                RuntimeWarning,
                stacklevel=2
            )
            return default
        return result
    except (ValueError, TypeError):
        return default


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def validate_api_key(key: Optional[str], key_name: str) -> bool:
    if not key:
        return False
    if not isinstance(key, str):
        warnings.warn(
            f"{key_name} must be a string",
            RuntimeWarning,
            stacklevel=2
        )
        return False

    if len(key) < 20:
        warnings.warn(
            f"{key_name} appears too short (min 20 characters expected)",
            RuntimeWarning,
            stacklevel=2
        )
        return False

    if len(key) > 500:
        warnings.warn(
            f"{key_name} appears too long (max 500 characters)",
            RuntimeWarning,
            stacklevel=2
        )
        return False

    if not re.match(r'^[A-Za-z0-9_\-\.]+$', key):
        warnings.warn(
            f"{key_name} contains invalid characters (only alphanumeric, -, _, . allowed)",
            RuntimeWarning,
            stacklevel=2
        )
        return False

    return True


MODEL_HAIKU = "claude-3-5-haiku-latest"
MODEL_SONNET = "claude-sonnet-4-20250514"


@dataclass
class GuardianConfig:
    PROJECT_ROOT: Path = field(default_factory=lambda: Path(
        os.getenv("GUARDIAN_ROOT") or Path(__file__).parent.parent.parent.absolute()
    ))

    LOG_DIR_OVERRIDE: Optional[str] = field(default_factory=lambda: os.getenv("GUARDIAN_LOG_DIR"))

    @property
    def DATA_DIR(self) -> Path:
        return self.PROJECT_ROOT / "data"

    @property
    def LOGS_DIR(self) -> Path:
        if self.LOG_DIR_OVERRIDE:
            return Path(self.LOG_DIR_OVERRIDE)
        return self.DATA_DIR / "logs"

    @property
    def LOGS_RAW_DIR(self) -> Path:
        return self.LOGS_DIR / "raw"

    @property
    def LOGS_DB_PATH(self) -> Path:
        return self.LOGS_DIR / "analytics.db"

    # per-stage models
    TRIAGE_MODEL: str = field(default_factory=lambda: os.getenv("GUARDIAN_TRIAGE_MODEL", MODEL_HAIKU))
    REASONING_MODEL: str = field(default_factory=lambda: os.getenv("GUARDIAN_REASONING_MODEL", MODEL_SONNET))
    DEEP_MODEL: str = field(default_factory=lambda: os.getenv("GUARDIAN_DEEP_MODEL", MODEL_SONNET))
    AGENT_MODEL: str = field(default_factory=lambda: os.getenv("GUARDIAN_AGENT_MODEL", MODEL_SONNET))

    TRIAGE_MAX_TOKENS: int = 512
    REASONING_MAX_TOKENS: int = 2048
    DEEP_MAX_TOKENS: int = 16000
    DEEP_THINKING_BUDGET: int = 10000
    AGENT_MAX_TOKENS: int = 4096

    EXTENDED_THINKING_TEMPERATURE: float = 1.0
    NORMAL_TEMPERATURE: float = 0.2

    # escalation thresholds
    TRIAGE_SAFE_CONFIDENCE: float = 0.85
    TRIAGE_DANGEROUS_FACTOR: float = 0.8
    DEEP_CONFIDENCE_THRESHOLD: float = 0.5
    MIN_VALUE_FOR_DEEP_USD: float = 1000.0
    MAX_COMPLEXITY_FOR_TRIAGE: int = 5

    TRIAGE_RATE_PER_MINUTE: int = field(default_factory=lambda: safe_int(os.getenv("TRIAGE_RATE_PER_MINUTE"), default=60, min_val=1, max_val=10000))
    REASONING_RATE_PER_MINUTE: int = field(default_factory=lambda: safe_int(os.getenv("REASONING_RATE_PER_MINUTE"), default=20, min_val=1, max_val=10000))
    DEEP_RATE_PER_MINUTE: int = field(default_factory=lambda: safe_int(os.getenv("DEEP_RATE_PER_MINUTE"), default=5, min_val=1, max_val=10000))

    LLM_STAGE_TIMEOUT: float = field(default_factory=lambda: safe_float(os.getenv("LLM_STAGE_TIMEOUT"), default=60.0, min_val=1.0, max_val=900.0))
    ANALYSIS_TIMEOUT_SECONDS: float = field(default_factory=lambda: safe_float(os.getenv("ANALYSIS_TIMEOUT_SECONDS"), default=120.0, min_val=5.0, max_val=3600.0))

    ENABLE_AGENTIC_ANALYSIS: bool = field(default_factory=lambda: env_flag("ENABLE_AGENTIC_ANALYSIS", True))
    AGENT_MAX_ITERATIONS: int = field(default_factory=lambda: safe_int(os.getenv("AGENT_MAX_ITERATIONS"), default=5, min_val=1, max_val=50))
    AGENT_MAX_SECONDS: float = field(default_factory=lambda: safe_float(os.getenv("AGENT_MAX_SECONDS"), default=60.0, min_val=1.0, max_val=900.0))
    AGENT_TOOL_TIMEOUT: float = field(default_factory=lambda: safe_float(os.getenv("AGENT_TOOL_TIMEOUT"), default=15.0, min_val=0.5, max_val=300.0))

    THREAT_FEED_TIMEOUT: float = field(default_factory=lambda: safe_float(os.getenv("THREAT_FEED_TIMEOUT"), default=5.0, min_val=0.5, max_val=60.0))
    GOPLUS_API_URL: str = field(default_factory=lambda: os.getenv("GOPLUS_API_URL", "https://api.gopluslabs.io/api/v1"))
    FORTA_API_URL: str = field(default_factory=lambda: os.getenv("FORTA_API_URL", "https://api.forta.network/graphql"))

    FULLNODE_URLS: Dict[str, str] = field(default_factory=lambda: {
        "mainnet": os.getenv("FULLNODE_MAINNET_URL", "https://fullnode.mainnet.aptoslabs.com/v1"),
        "testnet": os.getenv("FULLNODE_TESTNET_URL", "https://fullnode.testnet.aptoslabs.com/v1"),
        "devnet": os.getenv("FULLNODE_DEVNET_URL", "https://fullnode.devnet.aptoslabs.com/v1"),
    })

    COST_LIMIT_PER_ANALYSIS: Optional[float] = field(default_factory=lambda: (
        safe_float(os.getenv("GUARDIAN_COST_LIMIT_PER_ANALYSIS"), default=0.0, min_val=0.0) or None
    ))

    # usd per million tokens
    MODEL_PRICING = {
        MODEL_HAIKU: {"input": 0.80, "output": 4.00, "reasoning_output": 4.00},
        MODEL_SONNET: {"input": 3.00, "output": 15.00, "reasoning_output": 15.00},
    }

    ENABLE_LOGGING: bool = field(default_factory=lambda: env_flag("ENABLE_LOGGING", True))
    LOG_AI_CALLS: bool = True
    LOG_DECISIONS: bool = True
    LOG_TO_SQLITE: bool = True
    DEBUG_LLM_CALLS: bool = field(default_factory=lambda: env_flag("DEBUG_LLM", False))

    @property
    def ANTHROPIC_API_KEY(self) -> Optional[str]:
        return os.getenv("ANTHROPIC_API_KEY")

    def has_llm_credentials(self) -> bool:
        return bool(self.ANTHROPIC_API_KEY)

    def fullnode_url(self, network: str) -> str:
        return self.FULLNODE_URLS.get(network, self.FULLNODE_URLS["testnet"])

    def ensure_directories(self):
        directories = [
            self.LOGS_DIR,
            self.LOGS_RAW_DIR,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def get_model_pricing(self, model_name: str) -> dict:
        if model_name not in self.MODEL_PRICING:
            warnings.warn(f"Unknown model '{model_name}', using fallback pricing", RuntimeWarning)
        return self.MODEL_PRICING.get(model_name, {"input": 3.00, "output": 15.00, "reasoning_output": 15.00})

    def validate(self) -> bool:
        """warns about anything that would silently disable a stage, returns False if so"""
        ok = True
        if not self.ANTHROPIC_API_KEY:
            warnings.warn(
                "ANTHROPIC_API_KEY not set, AI stages will be skipped. "
                "Set it with: export ANTHROPIC_API_KEY='your-key'",
                RuntimeWarning,
                stacklevel=2
            )
            ok = False
        elif not validate_api_key(self.ANTHROPIC_API_KEY, "ANTHROPIC_API_KEY"):
            warnings.warn(
                "ANTHROPIC_API_KEY format validation failed. "
                "Please ensure it is a valid API key.",
                RuntimeWarning,
                stacklevel=2
            )
            ok = False
        return ok

    def summary(self) -> str:
        api_status = "Set" if self.ANTHROPIC_API_KEY else "NOT SET"

        return f"""
Guardian Configuration:
  Project Root: {self.PROJECT_ROOT}
  Logs Dir: {self.LOGS_DIR}
  Models: triage={self.TRIAGE_MODEL} reasoning={self.REASONING_MODEL} deep={self.DEEP_MODEL} agent={self.AGENT_MODEL}
  Rate Limits (per minute): triage={self.TRIAGE_RATE_PER_MINUTE} reasoning={self.REASONING_RATE_PER_MINUTE} deep={self.DEEP_RATE_PER_MINUTE}
  Deep Thinking Budget: {self.DEEP_THINKING_BUDGET} tokens
  Agentic: {'Enabled' if self.ENABLE_AGENTIC_ANALYSIS else 'Disabled'} (max {self.AGENT_MAX_ITERATIONS} iterations, {self.AGENT_MAX_SECONDS:.0f}s)
  Analysis Timeout: {self.ANALYSIS_TIMEOUT_SECONDS:.0f}s
  Cost Limit: {self.COST_LIMIT_PER_ANALYSIS or 'Unlimited'}
  Logging: {'Enabled' if self.ENABLE_LOGGING else 'Disabled'}
  API Key: {api_status}
""".strip()


config = GuardianConfig()

if __name__ == "__main__":
    print(config.summary())
    print()

    print("model pricing:")
    for model, pricing in config.MODEL_PRICING.items():
        print(f"  {model}:")
        print(f"    input: ${pricing['input']}/m tokens")
        print(f"    output: ${pricing['output']}/m tokens")
