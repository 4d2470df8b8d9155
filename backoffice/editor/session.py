"""The menu editor: one editing session on one menu.

``MenuEditor`` owns the local tree and the basics draft. Every edit applies
locally at once and notifies the matching save channel, which debounces and
writes in the background. Nothing here waits on the network except the
calls that must: loading, changing the menu type, catalog search, flushing
and publishing.
"""
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from backoffice.core.config import settings
from backoffice.core.errors import MenuEditorError, MenuValidationError, StructureSyncError
from backoffice.editor.basics import BasicsDraft, build_basics_payload
from backoffice.editor.coordinator import ChannelState, WriteChannel, WriteCoordinator
from backoffice.editor.fingerprint import basics_fingerprint, structure_fingerprint
from backoffice.editor.scheduler import DebounceScheduler
from backoffice.editor.structure import StructureSync, graft_server_ids, reconcile
from backoffice.editor.tree import MenuSummary, MenuTree
from backoffice.models.menu import MenuType
from backoffice.schemas.catalog import CatalogDishOut
from backoffice.schemas.menu import BasicsPayload, MenuOut, PublishResult

logger = logging.getLogger(__name__)

BASICS = "basics"
STRUCTURE = "structure"

ErrorCallback = Callable[[str, Exception], None]


def _digest_basics(draft: BasicsDraft) -> str:
    return basics_fingerprint(build_basics_payload(draft))


class MenuEditor:
    def __init__(
        self,
        api,
        menu_id: int,
        basics: Optional[BasicsDraft] = None,
        tree: Optional[MenuTree] = None,
        basics_delay: Optional[float] = None,
        structure_delay: Optional[float] = None,
        on_error: Optional[ErrorCallback] = None,
        scheduler: Optional[DebounceScheduler] = None,
    ):
        if menu_id is None:
            raise MenuValidationError("An editor needs a menu id")
        self.api = api
        self.menu_id = menu_id
        self._basics = basics or BasicsDraft()
        self._tree = tree or MenuTree()
        self._on_error = on_error
        self.last_errors: Dict[str, Exception] = {}

        # Catalog search box per section: UI state only, never saved
        self.search_terms: Dict[str, str] = {}
        self.search_results: Dict[str, List[CatalogDishOut]] = {}

        self._structure = StructureSync(api, menu_id)
        self.coordinator = WriteCoordinator(scheduler)
        self.basics_channel = self.coordinator.add(WriteChannel(
            BASICS,
            settings.BASICS_DEBOUNCE_SECONDS if basics_delay is None else basics_delay,
            self.coordinator.scheduler,
            snapshot=lambda: self._basics,
            fingerprint=_digest_basics,
            send=self._send_basics,
            on_error=self._report,
        ))
        self.structure_channel = self.coordinator.add(WriteChannel(
            STRUCTURE,
            settings.STRUCTURE_DEBOUNCE_SECONDS if structure_delay is None else structure_delay,
            self.coordinator.scheduler,
            snapshot=lambda: self._tree,
            fingerprint=structure_fingerprint,
            send=self._send_structure,
            on_error=self._report,
        ))

    @classmethod
    async def load(cls, api, menu_id: int, **kwargs) -> "MenuEditor":
        editor = cls(api, menu_id, **kwargs)
        editor.hydrate(await api.get_menu(menu_id))
        return editor

    @classmethod
    async def create_draft(cls, api, menu_type: MenuType = MenuType.CLOSED_CONVENTIONAL, **kwargs) -> "MenuEditor":
        menu_id = await api.create_draft(menu_type)
        return await cls.load(api, menu_id, **kwargs)

    def hydrate(self, menu: MenuOut) -> None:
        """Replace local state with the authority's and treat it as saved."""
        self.coordinator.cancel_pending()
        self._basics = BasicsDraft.from_menu(menu)
        self._tree = MenuTree.from_menu(menu, previous=self._tree)
        self.basics_channel.mark_saved(_digest_basics(self._basics))
        self.structure_channel.mark_saved(structure_fingerprint(self._tree))
        self._structure.mark_saved(self._tree)
        known = {s.client_id for s in self._tree.sections}
        self.search_terms = {k: v for k, v in self.search_terms.items() if k in known}
        self.search_results = {k: v for k, v in self.search_results.items() if k in known}
        logger.info("Menu %s loaded: %d sections", menu.id, len(self._tree.sections))

    # Read-only views

    @property
    def tree(self) -> MenuTree:
        return self._tree

    @property
    def basics(self) -> BasicsDraft:
        return self._basics

    @property
    def basics_payload(self) -> BasicsPayload:
        return build_basics_payload(self._basics)

    def summary(self) -> MenuSummary:
        return self._tree.summary()

    def status(self) -> Dict[str, ChannelState]:
        return self.coordinator.states()

    # Structure edits

    def _set_tree(self, tree: MenuTree) -> None:
        if tree is self._tree:
            return
        self._tree = tree
        self.structure_channel.notify_changed()

    def add_section(self, title: Optional[str] = None, kind: str = "custom") -> str:
        if title is None:
            self._set_tree(self._tree.add_section(kind=kind))
        else:
            self._set_tree(self._tree.add_section(title=title, kind=kind))
        return self._tree.sections[-1].client_id

    def remove_section(self, section_client_id: str) -> None:
        self._set_tree(self._tree.remove_section(section_client_id))
        if all(s.client_id != section_client_id for s in self._tree.sections):
            self.search_terms.pop(section_client_id, None)
            self.search_results.pop(section_client_id, None)

    def update_section(self, section_client_id: str, **changes) -> None:
        self._set_tree(self._tree.update_section(section_client_id, **changes))

    def toggle_section(self, section_client_id: str) -> bool:
        expanded = not self._tree.section(section_client_id).expanded
        self.update_section(section_client_id, expanded=expanded)
        return expanded

    def move_section(self, from_index: int, to_index: int) -> None:
        self._set_tree(self._tree.move_section(from_index, to_index))

    def reorder_sections(self, ordered_client_ids: Sequence[str]) -> None:
        self._set_tree(self._tree.reorder_sections(ordered_client_ids))

    def add_dish(
        self,
        section_client_id: str,
        from_catalog: Optional[CatalogDishOut] = None,
        title: Optional[str] = None,
    ) -> str:
        self._set_tree(self._tree.add_dish(section_client_id, from_catalog=from_catalog, title=title))
        return self._tree.section(section_client_id).dishes[-1].client_id

    def update_dish(self, section_client_id: str, dish_client_id: str, **changes) -> None:
        self._set_tree(self._tree.update_dish(section_client_id, dish_client_id, **changes))

    def remove_dish(self, section_client_id: str, dish_client_id: str) -> None:
        self._set_tree(self._tree.remove_dish(section_client_id, dish_client_id))

    def reorder_dishes(self, section_client_id: str, ordered_client_ids: Sequence[str]) -> None:
        self._set_tree(self._tree.reorder_dishes(section_client_id, ordered_client_ids))

    # Basics edits

    def update_basics(self, **changes) -> None:
        if "menu_type" in changes:
            raise MenuValidationError("The menu type is changed with change_menu_type()")
        draft = self._basics.update(**changes)
        if draft == self._basics:
            return
        self._basics = draft
        self.basics_channel.notify_changed()

    def _apply_menu_type(self, menu_type: MenuType) -> None:
        self._basics = replace(self._basics, menu_type=menu_type)
        self.basics_channel.notify_changed()
        self._set_tree(self._tree.with_menu_type(menu_type))

    async def change_menu_type(self, menu_type) -> MenuType:
        """Switch the menu kind now; undo it locally if the authority refuses."""
        try:
            menu_type = MenuType(menu_type)
        except ValueError:
            raise MenuValidationError(f"Unknown menu type {menu_type!r}")
        previous = self._tree.menu_type
        if menu_type == previous:
            return menu_type

        self._apply_menu_type(menu_type)
        try:
            saved = await self.api.change_menu_type(self.menu_id, menu_type)
        except MenuEditorError as exc:
            logger.warning("Menu %s: type change to %s rejected, reverting: %s", self.menu_id, menu_type.value, exc)
            if self._tree.menu_type == menu_type:
                self._apply_menu_type(previous)
            raise
        logger.info("Menu %s: type changed to %s", self.menu_id, saved.value)
        return saved

    # Catalog search

    async def search_catalog(self, section_client_id: str, term: str) -> List[CatalogDishOut]:
        self._tree.section(section_client_id)
        self.search_terms[section_client_id] = term
        query = term.strip()
        if len(query) < settings.CATALOG_SEARCH_MIN_CHARS:
            self.search_results[section_client_id] = []
            return []
        items = await self.api.search_catalog(query, settings.CATALOG_SEARCH_LIMIT)
        # Answers for a term the user has since changed are dropped
        if self.search_terms.get(section_client_id) == term:
            self.search_results[section_client_id] = items
        return items

    # Sending

    async def _send_basics(self, draft: BasicsDraft, force: bool) -> Optional[str]:
        await self.api.patch_basics(self.menu_id, build_basics_payload(draft))
        self.last_errors.pop(BASICS, None)
        return None

    async def _send_structure(self, snapshot: MenuTree, force: bool) -> str:
        try:
            rebuilt = await self._structure.push(snapshot, force=force)
        except StructureSyncError as exc:
            if exc.partial_tree is not None:
                self._tree = graft_server_ids(self._tree, exc.partial_tree)
                self.structure_channel.observe()
            raise
        self._tree = reconcile(self._tree, snapshot, rebuilt)
        self.structure_channel.observe()
        self.last_errors.pop(STRUCTURE, None)
        return structure_fingerprint(rebuilt)

    def _report(self, channel: str, exc: Exception) -> None:
        self.last_errors[channel] = exc
        if self._on_error is not None:
            self._on_error(channel, exc)

    # Flushing

    async def flush_basics(self) -> None:
        self.basics_channel.cancel()
        await self.basics_channel.write(force=True)

    async def flush_structure(self) -> None:
        self.structure_channel.cancel()
        await self.structure_channel.write(force=True)

    async def flush(self) -> None:
        await self.coordinator.flush()

    async def publish(self) -> PublishResult:
        """Write everything pending, then publish. Errors propagate."""
        self.coordinator.cancel_pending()
        await self.flush_basics()
        await self.flush_structure()
        result = await self.api.publish(self.menu_id)
        logger.info("Menu %s published", self.menu_id)
        return result

    async def wait_idle(self) -> None:
        """Wait for every pending timer and background write to finish."""
        await self.coordinator.drain()

    def close(self) -> None:
        """Drop timers that have not fired; writes already sent finish on their own."""
        self.coordinator.cancel_pending()
