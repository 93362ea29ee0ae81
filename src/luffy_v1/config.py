from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any


LIST_RELOAD_MODES = ("watch", "reread")
DEFAULT_FILTER_REPLY = "Mind your language in here :) <3"
DEFAULT_BAD_NAMES = ("9rvii", "yuvii", "anox", "avii", "satya", "avi")
DEFAULT_TRIGGER_WORDS = ("rkb", "bhen", "maa", "rndi", "chut", "randi", "madhrchodh", "mc", "bc", "didi", "ma")


class CredentialError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    owner_ids: tuple[str, ...]
    credential_path: Path
    lines_path: Path
    stickers_path: Path
    friends_path: Path
    targets_path: Path
    list_reload_mode: str
    status_host: str
    status_port: int
    log_store_path: Path
    bot_name: str
    bad_names: tuple[str, ...]
    trigger_words: tuple[str, ...]
    filter_reply: str

    @staticmethod
    def load(path: Path = Path("settings.txt")) -> "Settings":
        values = _parse_settings_file(path)
        return Settings.from_values(values)

    @staticmethod
    def from_values(values: dict[str, str]) -> "Settings":
        mode = values.get("LIST_RELOAD_MODE", "watch").strip().lower()
        if mode not in LIST_RELOAD_MODES:
            raise RuntimeError(f"LIST_RELOAD_MODE must be one of {', '.join(LIST_RELOAD_MODES)}.")
        try:
            status_port = int(values.get("STATUS_PORT", "20782"))
        except ValueError as exc:
            raise RuntimeError(f"Invalid numeric setting: {exc}") from exc
        return Settings(
            owner_ids=_split_list(values.get("OWNER_IDS", "")),
            credential_path=Path(values.get("CREDENTIAL_PATH", "appstate.json")),
            lines_path=Path(values.get("LINES_PATH", "np.txt")),
            stickers_path=Path(values.get("STICKERS_PATH", "Sticker.txt")),
            friends_path=Path(values.get("FRIENDS_PATH", "Friend.txt")),
            targets_path=Path(values.get("TARGETS_PATH", "Target.txt")),
            list_reload_mode=mode,
            status_host=values.get("STATUS_HOST", "0.0.0.0").strip(),
            status_port=status_port,
            log_store_path=Path(values.get("LOG_STORE_PATH", "data/luffy_log.msgpack")),
            bot_name=values.get("BOT_NAME", "LUFFY XD").strip(),
            bad_names=_word_list(values, "BAD_NAMES", DEFAULT_BAD_NAMES),
            trigger_words=_word_list(values, "TRIGGER_WORDS", DEFAULT_TRIGGER_WORDS),
            filter_reply=values.get("FILTER_REPLY", DEFAULT_FILTER_REPLY).strip() or DEFAULT_FILTER_REPLY,
        )

    def list_paths(self) -> dict[str, Path]:
        return {
            "lines": self.lines_path,
            "stickers": self.stickers_path,
            "friends": self.friends_path,
            "targets": self.targets_path,
        }


def load_credential(path: Path) -> dict[str, Any]:
    """
    Read the saved session blob.

    The contents are handed to the platform adapter untouched; only presence and
    JSON validity are checked here.
    """

    if not path.exists():
        raise CredentialError(f"{path} not found. Place your saved session file here.")
    try:
        blob = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CredentialError(f"{path} could not be read: {exc}") from exc
    if not isinstance(blob, dict):
        raise CredentialError(f"{path} must contain a JSON object.")
    return blob


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _word_list(values: dict[str, str], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    # an explicitly empty value turns the list off
    if key not in values:
        return default
    return tuple(word.lower() for word in _split_list(values[key]))


def _parse_settings_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values
