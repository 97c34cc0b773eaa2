from __future__ import annotations
import os, json, pathlib, random


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


SECTIONS: tuple[str, ...] = ("Quant", "Verbal", "Data Insights")
SECTION_ALIASES: dict[str, str] = {
    "quant": "Quant",
    "q": "Quant",
    "verbal": "Verbal",
    "v": "Verbal",
    "data insights": "Data Insights",
    "datainsights": "Data Insights",
    "data_insights": "Data Insights",
    "di": "Data Insights",
}
SECTION_SIZES: dict[str, int] = {"Quant": 21, "Verbal": 23, "Data Insights": 20}
BLOCK_SIZES: dict[str, int] = {"Quant": 4, "Verbal": 4, "Data Insights": 5}
SECTION_MINUTES: dict[str, int] = {"Quant": 45, "Verbal": 45, "Data Insights": 45}

REQUIRED_SKILLS: dict[str, tuple[str, ...]] = {
    "Quant": ("percent", "algebra", "ratio", "geometry"),
    "Verbal": ("critical-reasoning", "reading-comprehension"),
    "Data Insights": (
        "data-sufficiency",
        "table-analysis",
        "graphics-interpretation",
        "two-part-analysis",
        "multi-source-reasoning",
    ),
}

DIFFICULTY_LEVELS: tuple[str, ...] = ("E", "M", "H")
DIFFICULTY_ALIASES: dict[str, str] = {
    "e": "E", "easy": "E",
    "m": "M", "medium": "M", "med": "M",
    "h": "H", "hard": "H",
}
DIFFICULTY_NAMES: dict[str, str] = {"E": "Easy", "M": "Medium", "H": "Hard"}
DIFFICULTY_MIX: dict[str, float] = {"E": 0.30, "M": 0.50, "H": 0.20}
INITIAL_THETA: dict[str, float] = {"E": -1.0, "M": 0.0, "H": 1.0}
# item theta at or beyond this distance from zero reads as Easy/Hard
LABEL_THETA_CUT: float = 0.5

# (attempts below, rate) pairs, then the floor rate
LEARNING_RATE_STEPS: tuple[tuple[int, float], ...] = ((5, 0.15), (20, 0.10))
LEARNING_RATE_FLOOR: float = 0.05

MST_START_LEVEL: str = "M"
MST_STEP_UP: float = 0.75
MST_STEP_DOWN: float = 0.50

ROLLING_WINDOW: int = 5
ROLLING_DEFAULT_ACCURACY: float = 0.5
ROLLING_HARD_AT: float = 0.80
ROLLING_EASY_AT: float = 0.50

EDIT_BUDGET: int = 3
TIMER_WARNING_SECONDS: int = 300
TIMER_DANGER_SECONDS: int = 60

POLICIES: tuple[str, ...] = ("mst", "theta", "rolling")
ASSEMBLY_POLICY: str = "mst"
EXPOSURE_CONTROL: bool = True
CALIBRATION_ENABLED: bool = True

DEFAULT_SCALE_MAPPING: tuple[tuple[float, float], ...] = (
    (55, 605),
    (65, 655),
    (75, 705),
    (85, 745),
    (95, 805),
)

BANK_MIN_PER_BUCKET: int = 8

DEBUG_TRACE: bool = False
DEBUG_SEED: int | None = None
TRACE_FIELDS: tuple[str, ...] = (
    "section",
    "index",
    "item_id",
    "difficulty",
    "correct",
    "user_theta_before",
    "user_theta_after",
    "item_theta_before",
    "item_theta_after",
    "route",
)
# // env overrides for ops; defaults mirror the classic trainer.
ASSEMBLY_POLICY = os.getenv("ASSEMBLY_POLICY", ASSEMBLY_POLICY).strip().lower() or "mst"
EXPOSURE_CONTROL = _env_bool("EXPOSURE_CONTROL", EXPOSURE_CONTROL)
CALIBRATION_ENABLED = _env_bool("CALIBRATION_ENABLED", CALIBRATION_ENABLED)
EDIT_BUDGET = max(0, _env_int("EDIT_BUDGET", EDIT_BUDGET))
MST_STEP_UP = _env_float("MST_STEP_UP", MST_STEP_UP)
MST_STEP_DOWN = _env_float("MST_STEP_DOWN", MST_STEP_DOWN)
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)
_seed_raw = os.getenv("DEBUG_SEED")
DEBUG_SEED = int(_seed_raw) if _seed_raw and _seed_raw.strip().lstrip("-").isdigit() else None


def normalize_section(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    key = " ".join(raw.strip().lower().split())
    if key in SECTION_ALIASES:
        return SECTION_ALIASES[key]
    return None


def normalize_difficulty(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    return DIFFICULTY_ALIASES.get(raw.strip().lower())


def load_config() -> dict:
    cfg = {}
    p = pathlib.Path(os.getenv("EXAM_CONFIG", "config.json"))
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError): cfg = {}
    e = os.environ
    if e.get("SEED"): cfg["seed"] = int(e.get("SEED"))
    if e.get("ASSEMBLY_POLICY"): cfg["policy"] = ASSEMBLY_POLICY
    return cfg


def required_skills(section: str, cfg: dict | None = None) -> tuple[str, ...]:
    """Required skill tags for ``section``; ``config.json`` may override them."""

    section = normalize_section(section) or section
    override = (cfg or {}).get("required_skills")
    if isinstance(override, dict) and isinstance(override.get(section), list):
        return tuple(str(s).strip().lower() for s in override[section] if str(s).strip())
    return REQUIRED_SKILLS.get(section, ())


def make_rng(cfg: dict | None = None) -> random.Random:
    s = (cfg or {}).get("seed")
    if s is None:
        s = DEBUG_SEED
    if s is None:
        return random.Random()
    return random.Random(int(s))
