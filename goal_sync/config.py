from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from dotenv import find_dotenv, load_dotenv


def _load_dotenvs() -> None:
    """Load .env files without overriding values already set in the environment.

    Search order:
    1) Paths listed in GOAL_SYNC_ENV_PATH (os.pathsep or ';' separated)
    2) The repository root and the current working directory
    3) find_dotenv(usecwd=True) when nothing else was found

    Set SUPPRESS_ENV_WARNING=1 to silence the missing .env warning.
    """
    suppress_warn = os.getenv("SUPPRESS_ENV_WARNING", "0").strip().lower() in ("1", "true", "yes")

    explicit_paths: list[str] = []
    raw = os.getenv("GOAL_SYNC_ENV_PATH", "")
    for sep in (os.pathsep, ";"):
        if sep in raw:
            explicit_paths.extend(p.strip() for p in raw.split(sep) if p.strip())
            break
    else:
        if raw.strip():
            explicit_paths.append(raw.strip())

    here = Path(__file__).resolve()
    candidates = [
        *[Path(p).expanduser().resolve() for p in explicit_paths],
        here.parent.parent / ".env",
        Path.cwd() / ".env",
    ]

    loaded_from: list[str] = []
    for p in candidates:
        if str(p) in loaded_from:
            continue
        try:
            if p.is_file():
                load_dotenv(dotenv_path=str(p), override=False)
                logging.info(f"Loaded .env from: {p}")
                loaded_from.append(str(p))
        except OSError as e:
            logging.warning(f"Failed loading .env at {p}: {e}")

    if not loaded_from:
        auto = find_dotenv(usecwd=True)
        if auto:
            load_dotenv(dotenv_path=auto, override=False)
            logging.info(f"Loaded .env via find_dotenv: {auto}")
            loaded_from.append(auto)

    if not loaded_from and not suppress_warn:
        logging.debug("No .env file found; relying on process environment only.")


def _configure_logging() -> int:
    # Let the Functions host own the handlers; only fall back to basicConfig when it has none.
    root_logger = logging.getLogger()
    level_env = os.getenv("GOAL_SYNC_LOG_LEVEL", "INFO").strip().upper()
    level_map = {
        "CRITICAL": logging.CRITICAL,
        "ERROR": logging.ERROR,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "INFO": logging.INFO,
        "DEBUG": logging.DEBUG,
    }
    if level_env.isdigit():
        level = int(level_env)
    else:
        level = level_map.get(level_env, logging.INFO)

    if not root_logger.handlers:
        logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    else:
        root_logger.setLevel(level)
    logging.getLogger("goal_sync").setLevel(level)
    return level


_load_dotenvs()
LOG_LEVEL = _configure_logging()

# --- Platform ---
FUNIFIER_BASE_URL = os.getenv("FUNIFIER_BASE_URL", "https://service2.funifier.com/v3").rstrip("/")
REPORT_COLLECTION = os.getenv("GOAL_SYNC_REPORT_COLLECTION", "report__c")

# --- Mongo config ---
DB_NAME_ENV = "GOAL_SYNC_DB_NAME"
DEFAULT_DB_NAME = "Goal_Sync"
CONFIG_COLLECTION = "config"
SCHEMA_ID = "Goal_Sync_Schema"

DEFAULT_CYCLE_DAYS = 21

# Metric name -> platform action identifier
DEFAULT_ACTION_IDS: dict[str, str] = {
    "atividade": "atividade",
    "reaisPorAtivo": "reais_por_ativo",
    "faturamento": "faturamento",
    "multimarcasPorAtivo": "multimarcas_por_ativo",
    "conversoes": "conversoes",
    "upa": "upa",
}

_DEFAULT_CONFIG: dict[str, object] = {
    "tolerance": 0.01,
    "action_ids": dict(DEFAULT_ACTION_IDS),
    "action_attribute": "porcentagem_da_meta",
    "max_retries": 3,
    "retry_base_delay": 1.0,
    "inter_request_delay": 0.1,
    "bulk_timeout": 30.0,
    "bulk_timeout_per_item": 0.5,
    "single_timeout": 10.0,
    "lookup_workers": 4,
    "default_cycle_days": DEFAULT_CYCLE_DAYS,
}

_config_cache: dict[str, object] | None = None


def default_config() -> dict[str, object]:
    cfg = dict(_DEFAULT_CONFIG)
    cfg["action_ids"] = dict(DEFAULT_ACTION_IDS)
    return cfg


def load_sync_config(db=None, refresh: bool = False) -> dict[str, object]:
    """
    Load runtime tunables from the `config` collection.

    Bootstraps a Goal_Sync_Schema document with the built-in defaults when it
    is missing. Values under `defaults` override the built-ins; the merged
    result is cached per process until `refresh=True`.
    """
    global _config_cache

    if _config_cache is not None and not refresh:
        return _config_cache

    if db is None:
        from utils.db_utils import get_db

        db = get_db(DB_NAME_ENV, DEFAULT_DB_NAME)

    doc = db[CONFIG_COLLECTION].find_one({"_id": SCHEMA_ID})
    if not doc:
        now_iso = datetime.now(timezone.utc).isoformat()
        doc = {
            "_id": SCHEMA_ID,
            "module": "GoalSync",
            "schema_version": "2026-10-01.r1",
            "status": "active",
            "description": "Runtime config for report reconciliation and action-log submission.",
            "createdAt": now_iso,
            "updatedAt": now_iso,
            "defaults": default_config(),
            "meta": {
                "notes": "Auto-created by goal_sync. Safe to edit values under `defaults`; keep top-level keys.",
            },
        }
        db[CONFIG_COLLECTION].insert_one(doc)
        logging.info(f"[Config] Bootstrapped {SCHEMA_ID} document")

    defaults_raw = doc.get("defaults") or {}
    if not isinstance(defaults_raw, dict):
        defaults_raw = {}

    cfg: dict[str, object] = {**default_config(), **defaults_raw}
    action_ids = cfg.get("action_ids")
    if not isinstance(action_ids, dict) or not action_ids:
        cfg["action_ids"] = dict(DEFAULT_ACTION_IDS)

    _config_cache = cfg
    return cfg


def reset_config_cache() -> None:
    global _config_cache
    _config_cache = None
