"""
MenuEditor end to end against the in-process authority.

Covers:
  - loading a draft schedules no write
  - round-trip: new sections get server ids and index positions
  - ordering: [A,B,C] -> [B,A,C] saves as {B:0, A:1, C:2}
  - UI state (expand flag, catalog search) never schedules a write
  - ten edits in one quiet window -> one write carrying the final state
  - saving twice without edits -> one write
  - catalog linking reuses the picked catalog row
  - publish flushes pending basics and structure first
  - lenient numeric coercion
  - failures are reported, not fatal, and retried by the next edit
  - edits made while a save is in flight
  - optimistic menu type change with rollback
"""
from dataclasses import replace

import pytest

from backoffice.core.errors import (
    MenuValidationError,
    StructureSyncError,
    TransportError,
    WriteRejectedError,
)
from backoffice.editor.coordinator import ChannelState
from backoffice.editor.session import MenuEditor
from backoffice.models.menu import MenuType
from backoffice.schemas.catalog import CatalogDishIn


@pytest.fixture
def errors():
    return []


@pytest.fixture
async def editor(api, editor_options, errors):
    editor = await MenuEditor.create_draft(
        api, on_error=lambda channel, exc: errors.append((channel, exc)), **editor_options
    )
    yield editor
    editor.close()
    await editor.wait_idle()


@pytest.fixture
async def slow_editor(api):
    """Quiet windows long enough that nothing fires on its own during a test."""
    editor = await MenuEditor.create_draft(api, basics_delay=30, structure_delay=30)
    yield editor
    editor.close()


def _idle(editor) -> bool:
    return all(state == ChannelState.IDLE for state in editor.status().values())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoading:
    async def test_fresh_draft_schedules_nothing(self, api, editor):
        assert _idle(editor)
        await editor.wait_idle()
        assert api.count("patch_basics") == 0
        assert api.count("put_sections") == 0

    async def test_load_existing_menu(self, api, editor_options):
        menu_id = await api.create_draft(MenuType.SPECIAL)
        editor = await MenuEditor.load(api, menu_id, **editor_options)
        assert editor.tree.menu_type == MenuType.SPECIAL
        assert [s.title for s in editor.tree.sections] == ["Menu"]
        assert editor.basics.title == "New menu"
        assert _idle(editor)

    async def test_menu_id_is_required(self, api):
        with pytest.raises(MenuValidationError):
            MenuEditor(api, None)


# ---------------------------------------------------------------------------
# Structure round trips
# ---------------------------------------------------------------------------

class TestStructure:
    async def test_new_section_round_trip(self, api, editor):
        cid = editor.add_section("Drinks", kind="drinks")
        assert editor.tree.section(cid).id is None
        assert editor.status()["structure"] == ChannelState.SCHEDULED

        await editor.wait_idle()
        section = editor.tree.section(cid)
        menu = await api.get_menu(editor.menu_id)
        assert section.id == menu.sections[3].id
        assert section.position == 3
        assert _idle(editor)

    async def test_reorder_sets_server_positions(self, api, editor):
        a, b, c = (s.client_id for s in editor.tree.sections)
        ids = {cid: editor.tree.section(cid).id for cid in (a, b, c)}
        editor.reorder_sections([b, a, c])
        await editor.wait_idle()

        menu = await api.get_menu(editor.menu_id)
        assert {s.id: s.position for s in menu.sections} == {ids[b]: 0, ids[a]: 1, ids[c]: 2}

    async def test_dish_removal_is_immediate(self, api, editor):
        cid = editor.tree.sections[0].client_id
        dish = editor.add_dish(cid, title="Croquetas")
        await editor.wait_idle()
        assert len((await api.get_menu(editor.menu_id)).sections[0].dishes) == 1

        editor.remove_dish(cid, dish)
        assert editor.tree.section(cid).dishes == ()
        await editor.wait_idle()
        assert (await api.get_menu(editor.menu_id)).sections[0].dishes == []

    async def test_summary_follows_local_edits(self, editor):
        cid = editor.tree.sections[1].client_id
        editor.add_dish(cid, title="Steak")
        dish = editor.add_dish(cid, title="Fish")
        editor.update_dish(cid, dish, active=False)
        summary = editor.summary()
        assert summary.dish_count == 2
        assert summary.active_dish_count == 1


# ---------------------------------------------------------------------------
# UI state
# ---------------------------------------------------------------------------

class TestUiState:
    async def test_toggle_does_not_schedule(self, api, editor):
        cid = editor.tree.sections[0].client_id
        assert editor.toggle_section(cid) is False
        assert editor.tree.section(cid).expanded is False
        assert _idle(editor)
        await editor.wait_idle()
        assert api.count("put_sections") == 0
        assert api.count("put_section_dishes") == 0

    async def test_expand_flag_survives_a_save(self, editor):
        first, second = (s.client_id for s in editor.tree.sections[:2])
        editor.toggle_section(first)
        editor.update_section(second, title="Main courses")
        await editor.wait_idle()
        assert editor.tree.section(first).expanded is False
        assert editor.tree.section(second).title == "Main courses"

    async def test_short_search_term_skips_network(self, api, editor):
        cid = editor.tree.sections[0].client_id
        assert await editor.search_catalog(cid, "g") == []
        assert api.count("search_catalog") == 0
        assert editor.search_terms[cid] == "g"

    async def test_search_results_are_kept_per_section(self, api, editor):
        await api.upsert_catalog_dish(CatalogDishIn(title="Gazpacho"))
        cid = editor.tree.sections[0].client_id
        items = await editor.search_catalog(cid, "gaz")
        assert [i.title for i in items] == ["Gazpacho"]
        assert editor.search_results[cid] == items
        assert _idle(editor)


# ---------------------------------------------------------------------------
# Dedupe
# ---------------------------------------------------------------------------

class TestDedupe:
    async def test_rapid_edits_send_final_state_once(self, api, editor):
        for idx in range(10):
            editor.update_basics(title=f"Menu {idx}")
        await editor.wait_idle()
        calls = api.calls_to("patch_basics")
        assert len(calls) == 1
        args, _ = calls[0]
        assert args[1].menu_title == "Menu 9"

    async def test_saving_twice_writes_once(self, api, editor):
        editor.update_basics(title="Sunday lunch")
        await editor.wait_idle()
        assert await editor.basics_channel.write() is False
        assert await editor.structure_channel.write() is False
        assert api.count("patch_basics") == 1
        assert api.count("put_sections") == 0

    async def test_edit_and_undo_before_window_ends(self, api, editor):
        editor.update_basics(title="Other")
        editor.update_basics(title="New menu")
        assert _idle(editor)
        await editor.wait_idle()
        assert api.count("patch_basics") == 0

    async def test_channels_are_independent(self, api, editor):
        editor.update_basics(included_coffee=True)
        editor.add_dish(editor.tree.sections[0].client_id, title="Bread")
        await editor.wait_idle()
        assert api.count("patch_basics") == 1
        assert api.count("put_section_dishes") == 1
        assert api.count("put_sections") == 0


# ---------------------------------------------------------------------------
# Catalog linking
# ---------------------------------------------------------------------------

class TestCatalogLinking:
    async def test_dish_from_search_keeps_catalog_reference(self, api, editor):
        entry = await api.upsert_catalog_dish(CatalogDishIn(title="Gazpacho", description="Cold soup"))
        cid = editor.tree.sections[0].client_id
        [picked] = await editor.search_catalog(cid, "gazpacho")
        dish = editor.add_dish(cid, from_catalog=picked)
        await editor.wait_idle()

        assert editor.tree.section(cid).dish(dish).catalog_dish_id == entry.id
        assert api.count("upsert_catalog_dish") == 1
        menu = await api.get_menu(editor.menu_id)
        assert menu.sections[0].dishes[0].catalog_dish_id == entry.id
        assert menu.sections[0].dishes[0].description == "Cold soup"

    async def test_new_dish_is_linked_to_a_new_catalog_row(self, api, editor):
        cid = editor.tree.sections[0].client_id
        dish = editor.add_dish(cid, title="Tortilla")
        await editor.wait_idle()
        ref = editor.tree.section(cid).dish(dish).catalog_dish_id
        assert ref is not None
        [row] = await api.search_catalog("tortilla")
        assert row.id == ref

    async def test_catalog_failure_saves_dish_unlinked(self, api, editor):
        api.fail_next("upsert_catalog_dish", TransportError("catalog down"))
        cid = editor.tree.sections[0].client_id
        dish = editor.add_dish(cid, title="Tortilla")
        await editor.wait_idle()

        saved = editor.tree.section(cid).dish(dish)
        assert saved.id is not None
        assert saved.catalog_dish_id is None
        assert _idle(editor)


# ---------------------------------------------------------------------------
# Forced flush and publish
# ---------------------------------------------------------------------------

class TestPublish:
    async def test_publish_flushes_pending_edits_first(self, api, slow_editor):
        editor = slow_editor
        editor.update_basics(title="Christmas")
        editor.add_dish(editor.tree.sections[1].client_id, title="Turkey")
        assert editor.status() == {"basics": ChannelState.SCHEDULED, "structure": ChannelState.SCHEDULED}

        result = await editor.publish()
        assert result.success is True

        names = [name for name, _, _ in api.calls]
        assert names.index("patch_basics") < names.index("publish")
        assert names.index("put_section_dishes") < names.index("publish")
        menu = await api.get_menu(editor.menu_id)
        assert menu.is_draft is False
        assert menu.menu_title == "Christmas"
        assert [d.title for d in menu.sections[1].dishes] == ["Turkey"]
        assert _idle(editor)

    async def test_publish_rejected_without_dishes(self, api, slow_editor):
        with pytest.raises(WriteRejectedError) as info:
            await slow_editor.publish()
        assert info.value.status_code == 400
        assert (await api.get_menu(slow_editor.menu_id)).is_draft is True

    async def test_flush_writes_even_when_unchanged(self, api, slow_editor):
        await slow_editor.flush()
        assert api.count("patch_basics") == 1
        assert api.count("put_sections") == 1


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

class TestCoercion:
    async def test_non_numeric_price_saves_default(self, api, slow_editor):
        slow_editor.update_basics(price="25")
        await slow_editor.flush_basics()
        slow_editor.update_basics(price="twenty")
        assert slow_editor.basics_payload.price == 0.0
        await slow_editor.flush_basics()
        assert (await api.get_menu(slow_editor.menu_id)).price == 0.0

    async def test_typed_dish_prices_save(self, api):
        editor = await MenuEditor.create_draft(api, MenuType.A_LA_CARTE, basics_delay=30, structure_delay=30)
        cid = editor.tree.sections[0].client_id
        blank = editor.add_dish(cid, title="Bread")
        comma = editor.add_dish(cid, title="Steak")
        editor.update_dish(cid, blank, price="")
        editor.update_dish(cid, comma, price="12,5", supplement_enabled=True, supplement_price="abc")

        await editor.flush_structure()
        dishes = (await api.get_menu(editor.menu_id)).sections[0].dishes
        assert [d.price for d in dishes] == [0.0, 12.5]
        assert dishes[1].supplement_price is None
        assert _idle(editor)
        editor.close()

    async def test_comma_supplement_price_links_to_catalog(self, api, slow_editor):
        cid = slow_editor.tree.sections[0].client_id
        dish = slow_editor.add_dish(cid, title="Lobster")
        slow_editor.update_dish(cid, dish, supplement_enabled=True, supplement_price="3,5")

        await slow_editor.flush_structure()
        saved = (await api.get_menu(slow_editor.menu_id)).sections[0].dishes[0]
        assert saved.supplement_price == 3.5
        [row] = await api.search_catalog("lobster")
        assert row.id == saved.catalog_dish_id
        assert row.default_supplement_price == 3.5

    async def test_comma_price(self, api, slow_editor):
        slow_editor.update_basics(price="19,90", min_party_size="")
        await slow_editor.flush_basics()
        menu = await api.get_menu(slow_editor.menu_id)
        assert menu.price == 19.9
        assert menu.settings.min_party_size == 8


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    async def test_basics_failure_is_reported_and_retried_on_next_edit(self, api, editor, errors):
        api.fail_next("patch_basics")
        editor.update_basics(title="Brunch")
        await editor.wait_idle()

        assert [channel for channel, _ in errors] == ["basics"]
        assert editor.status()["basics"] == ChannelState.ERROR
        assert isinstance(editor.last_errors["basics"], TransportError)
        assert (await api.get_menu(editor.menu_id)).menu_title == "New menu"

        editor.update_basics(title="Brunch!")
        await editor.wait_idle()
        assert (await api.get_menu(editor.menu_id)).menu_title == "Brunch!"
        assert editor.status()["basics"] == ChannelState.IDLE
        assert "basics" not in editor.last_errors

    async def test_structure_failure_keeps_learned_ids(self, api, editor, errors):
        cid = editor.add_section("Drinks")
        dish = editor.add_dish(cid, title="Lemonade")
        api.fail_next("put_section_dishes", WriteRejectedError("boom", 500))
        await editor.wait_idle()

        assert [channel for channel, _ in errors] == ["structure"]
        assert isinstance(errors[0][1], StructureSyncError)
        section = editor.tree.section(cid)
        assert section.id is not None
        assert section.dish(dish).id is None

        await editor.flush_structure()
        menu = await api.get_menu(editor.menu_id)
        assert len(menu.sections) == 4
        assert [d.title for d in menu.sections[3].dishes] == ["Lemonade"]
        assert editor.tree.section(cid).dish(dish).id == menu.sections[3].dishes[0].id

    async def test_unbuildable_section_keeps_ids_of_committed_ones(self, api):
        editor = await MenuEditor.create_draft(api, MenuType.A_LA_CARTE, basics_delay=30, structure_delay=30)
        starters, mains, _ = (s.client_id for s in editor.tree.sections)
        editor.add_dish(starters, title="Soup")
        paella = editor.add_dish(mains, title="Paella")

        # A value that never went through update_dish, so it cannot become a row
        tree = editor.tree
        section = tree.section(mains)
        broken = replace(section, dishes=(replace(section.dish(paella), price="abc"),))
        editor._set_tree(replace(tree, sections=(tree.sections[0], broken, tree.sections[2])))

        with pytest.raises(StructureSyncError) as info:
            await editor.flush_structure()
        assert info.value.section_client_id == mains

        server_soup = (await api.get_menu(editor.menu_id)).sections[0].dishes[0]
        assert editor.tree.section(starters).dishes[0].id == server_soup.id
        assert editor.status()["structure"] == ChannelState.ERROR
        editor.close()

    async def test_forced_flush_propagates_errors(self, api, slow_editor):
        api.fail_next("patch_basics", WriteRejectedError("nope", 400))
        with pytest.raises(WriteRejectedError):
            await slow_editor.flush_basics()
        assert slow_editor.status()["basics"] == ChannelState.ERROR


# ---------------------------------------------------------------------------
# Edits during flight
# ---------------------------------------------------------------------------

class TestInFlight:
    async def test_edits_during_save_are_saved_next(self, api, editor):
        api.hold("put_sections")
        cid = editor.add_section("Drinks")
        await api.wait_entered("put_sections")
        assert editor.status()["structure"] == ChannelState.IN_FLIGHT

        dish = editor.add_dish(cid, title="Lemonade")
        editor.update_section(editor.tree.sections[0].client_id, title="Tapas")
        api.release("put_sections")
        await editor.wait_idle()

        menu = await api.get_menu(editor.menu_id)
        assert [s.title for s in menu.sections] == ["Tapas", "Mains", "Desserts", "Drinks"]
        assert [d.title for d in menu.sections[3].dishes] == ["Lemonade"]
        assert editor.tree.section(cid).id == menu.sections[3].id
        assert editor.tree.section(cid).dish(dish).id is not None
        assert api.max_active["put_sections"] == 1
        assert _idle(editor)


# ---------------------------------------------------------------------------
# Menu type
# ---------------------------------------------------------------------------

class TestMenuType:
    async def test_change_is_applied_and_saved(self, api, editor):
        assert await editor.change_menu_type("a_la_carte") == MenuType.A_LA_CARTE
        assert editor.tree.is_price_per_dish
        assert editor.basics.menu_type == MenuType.A_LA_CARTE
        await editor.wait_idle()
        assert (await api.get_menu(editor.menu_id)).menu_type == MenuType.A_LA_CARTE

    async def test_rejected_change_is_rolled_back(self, api, editor):
        api.fail_next("change_menu_type", WriteRejectedError("locked", 409))
        with pytest.raises(WriteRejectedError):
            await editor.change_menu_type(MenuType.SPECIAL)
        assert editor.tree.menu_type == MenuType.CLOSED_CONVENTIONAL
        assert editor.basics.menu_type == MenuType.CLOSED_CONVENTIONAL
        assert _idle(editor)

    async def test_unknown_type_fails_locally(self, api, editor):
        with pytest.raises(MenuValidationError):
            await editor.change_menu_type("buffet")
        assert api.count("change_menu_type") == 0

    async def test_basics_edit_cannot_change_type(self, editor):
        with pytest.raises(MenuValidationError):
            editor.update_basics(menu_type="special")


# ---------------------------------------------------------------------------
# Closing
# ---------------------------------------------------------------------------

class TestClose:
    async def test_close_drops_pending_timers(self, api, editor):
        editor.update_basics(title="Never sent")
        editor.close()
        await editor.wait_idle()
        assert api.count("patch_basics") == 0
        assert _idle(editor)
