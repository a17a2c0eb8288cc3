"""Localized summary lines, resolved once per process from the configured locale."""

from __future__ import annotations

from enum import Enum
from typing import Mapping


class MsgId(str, Enum):
    CASES = "cases"
    ACTIVE = "active"
    DEATHS = "deaths"
    RECOVERED = "recovered"
    HOSPITALISED = "hospitalised"
    INCIDENCE = "incidence"


_LABELS: Mapping[str, Mapping[MsgId, str]] = {
    "en": {
        MsgId.CASES: "total cases",
        MsgId.ACTIVE: "active cases",
        MsgId.DEATHS: "deaths",
        MsgId.RECOVERED: "recovered",
        MsgId.HOSPITALISED: "hospitalised",
        MsgId.INCIDENCE: "incidence",
    },
    "de": {
        MsgId.CASES: "Fälle",
        MsgId.ACTIVE: "Aktive Fälle",
        MsgId.DEATHS: "Sterbefälle",
        MsgId.RECOVERED: "Genesene",
        MsgId.HOSPITALISED: "Krankenhauseinweisungen",
        MsgId.INCIDENCE: "Inzidenz",
    },
}

DEFAULT_LANG = "en"


def _templates(labels: Mapping[MsgId, str]) -> dict[tuple[MsgId, bool], str]:
    templates: dict[tuple[MsgId, bool], str] = {}
    for msg, label in labels.items():
        number = "{count:>6.1f}" if msg is MsgId.INCIDENCE else "{count:>6}"
        change = "{increase:>+5.1f}" if msg is MsgId.INCIDENCE else "{increase:>+5}"
        templates[(msg, True)] = f"{number} ({change}) {label}"
        templates[(msg, False)] = f"{number} {label}"
    return templates


class Messages:
    """Key -> format string lookup for one language."""

    def __init__(self, lang: str = DEFAULT_LANG) -> None:
        self.lang = lang if lang in _LABELS else DEFAULT_LANG
        self._templates = _templates(_LABELS[self.lang])

    def get(self, msg: MsgId, count: float, increase: float | None = None) -> str:
        template = self._templates[(msg, increase is not None)]
        return template.format(count=count, increase=increase)


def available_languages() -> tuple[str, ...]:
    return tuple(_LABELS)


__all__ = ["DEFAULT_LANG", "Messages", "MsgId", "available_languages"]
