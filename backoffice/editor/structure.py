"""Structural save: sections first, then each section's dishes.

A save runs in dependency order. The section skeleton goes out first, since
a new section only gets the server id its dishes are filed under once the
skeleton round-trips. The authority answers with the same rows in the same
order, so new sections are joined back to their local client ids by array
position. Then, one section at a time, every section whose dishes changed
gets its whole dish list replaced. Dishes are matched back by server id,
falling back to their position among the dishes sent.

Nothing is rolled back. When a section fails, sections already written stay
written, and the ``StructureSyncError`` raised carries the tree as
reconciled so far.
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from backoffice.core.errors import MenuEditorError, StructureSyncError, TransportError
from backoffice.editor.catalog_link import resolve_catalog_ref
from backoffice.editor.fingerprint import (
    section_dishes_fingerprint,
    skeleton_fingerprint,
    structure_fingerprint,
)
from backoffice.editor.tree import EditorDish, EditorSection, MenuTree, dish_from_row, with_positions
from backoffice.schemas.menu import DishIn, DishOut, SectionIn, SectionOut

logger = logging.getLogger(__name__)

DEFAULT_SECTION_TITLE = "Section"


def section_rows(tree: MenuTree) -> List[SectionIn]:
    return [
        SectionIn(id=s.id, title=s.title.strip() or DEFAULT_SECTION_TITLE, kind=s.kind, position=idx)
        for idx, s in enumerate(tree.sections)
    ]


def dish_row(dish: EditorDish, catalog_ref: Optional[int], priced: bool) -> DishIn:
    return DishIn(
        id=dish.id,
        catalog_dish_id=catalog_ref,
        title=dish.title.strip(),
        description=dish.description,
        allergens=list(dish.allergens),
        supplement_enabled=dish.supplement_enabled,
        supplement_price=dish.supplement_price if dish.supplement_enabled else None,
        price=dish.price if priced else None,
        active=dish.active,
    )


def merge_sections(local: Sequence[EditorSection], rows: Sequence[SectionOut]) -> List[EditorSection]:
    """Join the authority's section rows to the sent sections by array position."""
    if len(rows) != len(local):
        raise TransportError(f"Sent {len(local)} sections, authority returned {len(rows)}")
    return [
        replace(section, id=row.id, title=row.title, kind=row.kind, position=row.position)
        for section, row in zip(local, rows)
    ]


def merge_dishes(sent: Sequence[EditorDish], rows: Sequence[DishOut]) -> List[EditorDish]:
    """Rebuild sent dishes from the authority's rows, keeping client ids.

    A row whose id matches a sent dish keeps that dish's client id; a row
    for a newly created dish takes the client id of the dish sent at the
    same index.
    """
    if len(rows) != len(sent):
        raise TransportError(f"Sent {len(sent)} dishes, authority returned {len(rows)}")
    by_id = {d.id: d for d in sent if d.id is not None}
    return [dish_from_row(row, by_id.get(row.id) or sent[idx]) for idx, row in enumerate(rows)]


class StructureSync:
    """Pushes a tree snapshot and rebuilds it from what the authority returns.

    Keeps the fingerprints of the last saved skeleton and of each section's
    dishes (by section client id) so unchanged parts are not re-sent.
    """

    def __init__(self, api, menu_id: int):
        self.api = api
        self.menu_id = menu_id
        self.saved_skeleton: Optional[str] = None
        self.saved_section_dishes: Dict[str, str] = {}

    def mark_saved(self, tree: MenuTree) -> None:
        priced = tree.is_price_per_dish
        self.saved_skeleton = skeleton_fingerprint(tree)
        self.saved_section_dishes = {
            s.client_id: section_dishes_fingerprint(s, priced) for s in tree.sections
        }

    def _needs_skeleton(self, tree: MenuTree, force: bool) -> bool:
        return (
            force
            or skeleton_fingerprint(tree) != self.saved_skeleton
            or any(s.id is None for s in tree.sections)
        )

    async def push(self, snapshot: MenuTree, force: bool = False) -> MenuTree:
        """Save ``snapshot``; returns it rebuilt from the authority's rows."""
        sections = list(snapshot.sections)

        if self._needs_skeleton(snapshot, force):
            try:
                rows = await self.api.put_sections(self.menu_id, section_rows(snapshot))
                sections = merge_sections(sections, rows)
            except (MenuEditorError, ValidationError) as exc:
                raise StructureSyncError(f"Sections were not saved: {exc}") from exc
            self.saved_skeleton = skeleton_fingerprint(replace(snapshot, sections=tuple(sections)))
            logger.debug("Menu %s: section skeleton saved (%d sections)", self.menu_id, len(sections))
        else:
            logger.debug("Menu %s: section skeleton unchanged", self.menu_id)

        priced = snapshot.is_price_per_dish
        for idx, section in enumerate(sections):
            if section.id is None:
                continue
            fingerprint = section_dishes_fingerprint(section, priced)
            if not force and self.saved_section_dishes.get(section.client_id) == fingerprint:
                continue
            try:
                section = await self._push_dishes(section, priced)
            except (MenuEditorError, ValidationError) as exc:
                partial = replace(snapshot, sections=tuple(sections))
                raise StructureSyncError(
                    f"Dishes of section {section.title!r} were not saved: {exc}",
                    partial_tree=partial,
                    section_client_id=section.client_id,
                ) from exc
            sections[idx] = section
            self.saved_section_dishes[section.client_id] = section_dishes_fingerprint(section, priced)

        rebuilt = replace(snapshot, sections=tuple(sections))
        self.mark_saved(rebuilt)
        return rebuilt

    async def _push_dishes(self, section: EditorSection, priced: bool) -> EditorSection:
        sent = [d for d in section.dishes if d.title.strip()]
        if len(sent) < len(section.dishes):
            logger.warning(
                "Section %r: %d untitled dish(es) held back",
                section.title, len(section.dishes) - len(sent),
            )

        payload = []
        for dish in sent:
            catalog_ref = await resolve_catalog_ref(self.api, dish)
            payload.append(dish_row(dish, catalog_ref, priced))

        rows = await self.api.put_section_dishes(self.menu_id, section.id, payload)
        merged = iter(merge_dishes(sent, rows))

        # Untitled dishes stay in place locally; any server row they had is gone now
        dishes = [
            next(merged) if dish.title.strip() else replace(dish, id=None)
            for dish in section.dishes
        ]
        logger.debug("Section %s: %d dishes saved", section.id, len(sent))
        return replace(section, dishes=with_positions(dishes))


def graft_server_ids(live: MenuTree, rebuilt: MenuTree) -> MenuTree:
    """Copy server ids and catalog references from ``rebuilt`` onto ``live``.

    Entities are matched by client id; everything the user can edit stays as
    it is in ``live``. Sections or dishes only one side knows are left alone.
    """
    saved = {s.client_id: s for s in rebuilt.sections}
    sections = []
    for section in live.sections:
        source = saved.get(section.client_id)
        if source is None:
            sections.append(section)
            continue
        saved_dishes = {d.client_id: d for d in source.dishes}
        dishes = []
        for dish in section.dishes:
            match = saved_dishes.get(dish.client_id)
            if match is None:
                dishes.append(dish)
                continue
            catalog_ref = dish.catalog_dish_id if dish.catalog_dish_id is not None else match.catalog_dish_id
            if match.id == dish.id and catalog_ref == dish.catalog_dish_id:
                dishes.append(dish)
            else:
                dishes.append(replace(dish, id=match.id, catalog_dish_id=catalog_ref))
        if source.id != section.id or any(a is not b for a, b in zip(dishes, section.dishes)):
            section = replace(section, id=source.id, dishes=tuple(dishes))
        sections.append(section)
    return replace(live, sections=tuple(sections))


def reconcile(live: MenuTree, sent: MenuTree, rebuilt: MenuTree) -> MenuTree:
    """Fold a successful save back into the live tree.

    If nothing persistable changed while the save was in flight, the live
    tree becomes the rebuilt one, keeping the live expand flags. Otherwise
    the new server ids are grafted on and the newer edits go out next cycle.
    """
    if structure_fingerprint(live) != structure_fingerprint(sent):
        return graft_server_ids(live, rebuilt)
    expanded = {s.client_id: s.expanded for s in live.sections}
    return replace(
        rebuilt,
        menu_type=live.menu_type,
        sections=tuple(
            s if expanded.get(s.client_id, s.expanded) == s.expanded
            else replace(s, expanded=expanded[s.client_id])
            for s in rebuilt.sections
        ),
    )
