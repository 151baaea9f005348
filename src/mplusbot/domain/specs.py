from __future__ import annotations

from typing import Literal

Role = Literal["TANK", "HEALING", "DPS"]


# class -> spec -> role
CLASS_SPECS: dict[str, dict[str, Role]] = {
    "Death Knight": {"Blood": "TANK", "Frost": "DPS", "Unholy": "DPS"},
    "Demon Hunter": {"Havoc": "DPS", "Vengeance": "TANK"},
    "Druid": {"Balance": "DPS", "Feral": "DPS", "Guardian": "TANK", "Restoration": "HEALING"},
    "Evoker": {"Devastation": "DPS", "Preservation": "HEALING", "Augmentation": "DPS"},
    "Hunter": {"Beast Mastery": "DPS", "Marksmanship": "DPS", "Survival": "DPS"},
    "Mage": {"Arcane": "DPS", "Fire": "DPS", "Frost": "DPS"},
    "Monk": {"Brewmaster": "TANK", "Mistweaver": "HEALING", "Windwalker": "DPS"},
    "Paladin": {"Holy": "HEALING", "Protection": "TANK", "Retribution": "DPS"},
    "Priest": {"Discipline": "HEALING", "Holy": "HEALING", "Shadow": "DPS"},
    "Rogue": {"Assassination": "DPS", "Outlaw": "DPS", "Subtlety": "DPS"},
    "Shaman": {"Elemental": "DPS", "Enhancement": "DPS", "Restoration": "HEALING"},
    "Warlock": {"Affliction": "DPS", "Demonology": "DPS", "Destruction": "DPS"},
    "Warrior": {"Arms": "DPS", "Fury": "DPS", "Protection": "TANK"},
}

_RAIDERIO_ROLES: dict[str, Role] = {
    "tank": "TANK",
    "healing": "HEALING",
    "healer": "HEALING",
    "dps": "DPS",
}


def _norm(text: str) -> str:
    return " ".join(text.strip().lower().split())


def role_for(spec_name: str | None, class_name: str | None) -> Role | None:
    """Role of a spec within a known class. ``None`` when the pair is unknown."""
    if not spec_name or not class_name:
        return None
    spec_key = _norm(spec_name)
    class_key = _norm(class_name)
    for cls, specs in CLASS_SPECS.items():
        if _norm(cls) != class_key:
            continue
        for spec, role in specs.items():
            if _norm(spec) == spec_key:
                return role
    return None


def candidate_roles(spec_name: str | None) -> frozenset[Role]:
    """Every role a bare spec name can stand for.

    Names shared by several classes (Frost, Holy, Restoration, Protection)
    usually map to one role anyway, but callers should not assume so.
    """
    if not spec_name:
        return frozenset()
    spec_key = _norm(spec_name)
    return frozenset(
        role
        for specs in CLASS_SPECS.values()
        for spec, role in specs.items()
        if _norm(spec) == spec_key
    )


def classes_for_spec(spec_name: str) -> list[str]:
    spec_key = _norm(spec_name)
    return [cls for cls, specs in CLASS_SPECS.items() if any(_norm(s) == spec_key for s in specs)]


def normalize_role(value: object) -> Role | None:
    """Map RaiderIO's ``active_spec_role`` ("DPS", "HEALING", "TANK") to a Role."""
    if not isinstance(value, str):
        return None
    return _RAIDERIO_ROLES.get(value.strip().lower())
