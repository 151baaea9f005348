from __future__ import annotations


def normalize_realm_slug(realm: str) -> str:
    return (
        realm.strip()
        .lower()
        .replace("’", "")
        .replace("'", "")
        .replace(" ", "-")
    )


def normalize_character_name(name: str) -> str:
    """Capitalized display form: letters only, first one upper-cased."""
    letters = "".join(ch for ch in name.strip() if ch.isalpha())
    if not letters:
        return ""
    return letters[0].upper() + letters[1:].lower()


def character_path_name(name: str) -> str:
    """Lower-case form used in Blizzard profile URLs."""
    return name.strip().lower()
