"""
config.py – Centralised configuration via environment variables.
All tunable knobs of the payment network live here so nothing is scattered
across modules.
"""
import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def parse_thresholds(raw: str) -> tuple[int, ...]:
    """Parse a comma list like ``"1,2,4"`` into a strictly increasing tuple."""
    try:
        values = tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValueError(f"Invalid trust thresholds: {raw!r}") from None
    if not values:
        raise ValueError("At least one trust threshold is required")
    if values[0] < 1 or any(b <= a for a, b in zip(values, values[1:])):
        raise ValueError(f"Trust thresholds must be positive and strictly increasing: {raw!r}")
    return values


# ── Trust tiers ────────────────────────────────────────────────────────────────
# One verdict file per threshold; distance <= T is trusted at that tier.
TRUST_THRESHOLDS: tuple[int, ...] = parse_thresholds(os.getenv("PAYMO_TRUST_THRESHOLDS", "1,2,4"))

# ── Engine ─────────────────────────────────────────────────────────────────────
# "bfs" walks the frontier level by level, "dijkstra" relaxes through a heap.
DISTANCE_METHOD: str = os.getenv("PAYMO_DISTANCE_METHOD", "bfs").strip().lower()
# "pairs" stores canonical (min, max) tuples, "pairing" stores one integer key.
LINK_INDEX: str = os.getenv("PAYMO_LINK_INDEX", "pairs").strip().lower()

# ── Ingestion ──────────────────────────────────────────────────────────────────
# PayMo ids are integers; turn off to accept opaque string ids.
NUMERIC_IDS: bool = _flag("PAYMO_NUMERIC_IDS", "true")

# ── File-based run ─────────────────────────────────────────────────────────────
BATCH_FILE: str = os.getenv("PAYMO_BATCH_FILE", "paymo_input/batch_payment.csv")
STREAM_FILE: str = os.getenv("PAYMO_STREAM_FILE", "paymo_input/stream_payment.csv")
OUTPUT_DIR: str = os.getenv("PAYMO_OUTPUT_DIR", "paymo_output")
DOT_FILE: str = os.getenv("PAYMO_DOT_FILE", "figs/paymo-network.dot")

# ── HTTP service ───────────────────────────────────────────────────────────────
MAX_FILE_SIZE_MB: int = int(os.getenv("MAX_FILE_SIZE_MB", "50"))
MAX_FILE_SIZE_BYTES: int = MAX_FILE_SIZE_MB * 1024 * 1024
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "5000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
