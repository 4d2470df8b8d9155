"""Fingerprints of persistable state.

A fingerprint is a digest of a canonical, order-sensitive JSON rendering of
the fields that reach the authority. Anything the user can change without
causing a write (expand/collapse, search text) is left out, so toggling it
leaves every fingerprint untouched.

Basics and structure get separate fingerprints because they are saved on
separate channels. The structural channel also keeps finer ones (the section
skeleton, and the dishes of each section) to decide which parts of a tree
actually need re-sending.
"""
import hashlib
import json
from typing import Dict

from backoffice.editor.tree import EditorDish, EditorSection, MenuTree
from backoffice.schemas.menu import BasicsPayload


def _digest(value) -> str:
    canonical = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _dish_fields(dish: EditorDish, position: int, priced: bool) -> dict:
    return {
        "id": dish.id,
        "catalog": dish.catalog_dish_id,
        "title": dish.title,
        "description": dish.description,
        "allergens": list(dish.allergens),
        "supplement_enabled": dish.supplement_enabled,
        "supplement_price": dish.supplement_price,
        "price": dish.price if priced else None,
        "active": dish.active,
        "position": position,
    }


def _skeleton_fields(section: EditorSection, position: int) -> dict:
    return {
        "id": section.id,
        "client_id": section.client_id,
        "title": section.title.strip(),
        "kind": section.kind,
        "position": position,
    }


def basics_fingerprint(payload: BasicsPayload) -> str:
    return _digest(payload.model_dump(mode="json"))


def structure_fingerprint(tree: MenuTree) -> str:
    """Whole-tree fingerprint driving the structural channel."""
    priced = tree.is_price_per_dish
    return _digest({
        "priced": priced,
        "sections": [
            dict(
                _skeleton_fields(section, idx),
                dishes=[_dish_fields(d, i, priced) for i, d in enumerate(section.dishes)],
            )
            for idx, section in enumerate(tree.sections)
        ],
    })


def skeleton_fingerprint(tree: MenuTree) -> str:
    """Sections only: what the section-structure endpoint receives."""
    return _digest([_skeleton_fields(section, idx) for idx, section in enumerate(tree.sections)])


def section_dishes_fingerprint(section: EditorSection, priced: bool) -> str:
    return _digest([_dish_fields(d, i, priced) for i, d in enumerate(section.dishes)])


def section_dishes_fingerprints(tree: MenuTree) -> Dict[str, str]:
    priced = tree.is_price_per_dish
    return {s.client_id: section_dishes_fingerprint(s, priced) for s in tree.sections}
