from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Iterable

from genetic_models import STATUSES, GeneticMarker, Recommendation, UserProfile
from genetic_parser import merge_markers
from run_utils import load_json, write_json

DATA_VERSION = "1.0.0"
STATE_KEYS = (
    "user_profile",
    "genetic_markers",
    "recommendations",
    "lifestyle_plan",
    "settings",
)


def empty_state() -> dict[str, Any]:
    return {
        "user_profile": {},
        "genetic_markers": [],
        "recommendations": [],
        "lifestyle_plan": [],
        "settings": {"persist_api_key": False},
        "last_updated": time.time(),
        "data_version": DATA_VERSION,
    }


def load_state(path: Path) -> dict[str, Any]:
    state = empty_state()
    stored = load_json(path)
    if isinstance(stored, dict):
        state.update({key: value for key, value in stored.items() if value is not None})
    return state


def save_state(path: Path, state: dict[str, Any]) -> None:
    state["last_updated"] = time.time()
    path.parent.mkdir(parents=True, exist_ok=True)
    write_json(path, state)


def get_markers(state: dict[str, Any]) -> list[GeneticMarker]:
    return [GeneticMarker.from_dict(item) for item in state.get("genetic_markers", [])]


def add_markers(state: dict[str, Any], markers: Iterable[GeneticMarker]) -> dict[str, Any]:
    merged = merge_markers(get_markers(state), markers)
    state["genetic_markers"] = [marker.to_dict() for marker in merged]
    return state


def get_profile(state: dict[str, Any]) -> UserProfile:
    return UserProfile.from_dict(state.get("user_profile"))


def update_profile(state: dict[str, Any], **updates: Any) -> dict[str, Any]:
    profile = dict(state.get("user_profile") or {})
    profile.update({key: value for key, value in updates.items() if value is not None})
    state["user_profile"] = profile
    return state


def get_recommendations(state: dict[str, Any]) -> list[Recommendation]:
    return [Recommendation.from_dict(item) for item in state.get("recommendations", [])]


def set_recommendations(
    state: dict[str, Any], recommendations: Iterable[Recommendation]
) -> dict[str, Any]:
    state["recommendations"] = [rec.to_dict() for rec in recommendations]
    return state


def update_recommendation_status(
    state: dict[str, Any], rec_id: str, status: str
) -> dict[str, Any]:
    if status not in STATUSES:
        raise ValueError(f"Unknown recommendation status: {status}")
    for item in state.get("recommendations", []):
        if item.get("id") == rec_id:
            item["status"] = status
            return state
    raise KeyError(f"No recommendation with id {rec_id}")


def export_state(state: dict[str, Any]) -> dict[str, Any]:
    exported = {key: state.get(key) for key in STATE_KEYS}
    settings = dict(exported.get("settings") or {})
    settings.pop("gemini_api_key", None)
    exported["settings"] = settings
    exported["data_version"] = state.get("data_version", DATA_VERSION)
    return exported


def import_state(state: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
    for key in STATE_KEYS:
        if key in data and data[key] is not None:
            state[key] = data[key]
    return state


def clear_state(path: Path) -> dict[str, Any]:
    state = empty_state()
    save_state(path, state)
    return state
