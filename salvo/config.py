from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

_TRUTHY = ("1", "true", "yes", "on")


def config_dir() -> Path:
    override = os.getenv("SALVO_CONFIG_DIR")
    return Path(override) if override else Path.home() / ".salvo"


def config_path() -> Path:
    return config_dir() / "config.json"


def load_config() -> Dict[str, Any]:
    try:
        return json.loads(config_path().read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}


def save_config(cfg: Dict[str, Any]) -> None:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, indent=2), encoding="utf-8")


def _flag(key: str, override: bool | str | None, default: bool) -> bool:
    """
    Resolve a boolean setting. Precedence: override > env (SALVO_<KEY>) > config file.
    """
    if isinstance(override, bool):
        return override
    if override is not None:
        return override.strip().lower() in _TRUTHY
    val = os.getenv(f"SALVO_{key.upper()}")
    if val is None:
        val = str(load_config().get(key, default))
    return val.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    # Full attacks are resolved one roll at a time.
    sequential_attacks: bool = False
    clear_targets_after_attack: bool = False
    # Multi-attack actions can be rolled one attack at a time from a card.
    attack_card: bool = True

    @classmethod
    def load(
        cls,
        *,
        sequential_attacks: bool | str | None = None,
        clear_targets_after_attack: bool | str | None = None,
        attack_card: bool | str | None = None,
    ) -> "Settings":
        return cls(
            sequential_attacks=_flag("sequential_attacks", sequential_attacks, False),
            clear_targets_after_attack=_flag(
                "clear_targets_after_attack", clear_targets_after_attack, False
            ),
            attack_card=_flag("attack_card", attack_card, True),
        )


__all__ = ["Settings", "load_config", "save_config", "config_dir", "config_path"]
