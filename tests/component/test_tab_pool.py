"""L2 Component Tests: TabPool membership, FIFO eviction and the active pointer."""

import pytest

from tests.fakes import FakeConsoleMessage, FakeContext
from webcurl.core.errors import ValidationError
from webcurl.tools.browser.events import EventRecorder
from webcurl.tools.browser.tabs import MAX_TABS, TabPool


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def context():
    return FakeContext()


@pytest.fixture
def pool(context, recorder):
    return TabPool(context, recorder, viewport={"width": 1280, "height": 800})


class TestEviction:
    @pytest.mark.asyncio
    async def test_eleventh_tab_evicts_first_created(self, pool, recorder):
        created = []
        for _ in range(MAX_TABS):
            tab, _ = await pool.create_tab()
            created.append(tab.page)

        # 最近使用过第一个标签页，淘汰仍按创建顺序
        await pool.select_tab(0)
        eleventh, index = await pool.create_tab()

        assert len(pool) == MAX_TABS
        assert index == MAX_TABS - 1
        assert created[0].closed
        assert pool.index_of(created[0]) is None
        assert not recorder.is_tracking(created[0])
        assert [t.page for t in pool.tabs] == created[1:] + [eleventh.page]

    @pytest.mark.asyncio
    async def test_never_exceeds_capacity(self, pool, context):
        for _ in range(25):
            await pool.create_tab()
        assert len(pool) == MAX_TABS
        assert len(context.pages) == MAX_TABS

    @pytest.mark.asyncio
    async def test_new_page_gets_viewport_and_listeners(self, pool, recorder):
        tab, _ = await pool.create_tab()
        assert tab.page.viewport == {"width": 1280, "height": 800}
        tab.page.emit("console", FakeConsoleMessage("hi"))
        assert len(recorder.console_messages(tab.page)) == 1


class TestActiveTab:
    @pytest.mark.asyncio
    async def test_get_active_creates_first_tab(self, pool):
        tab = await pool.get_active()
        assert len(pool) == 1
        assert pool.active_index == 0
        assert (await pool.get_active()) is tab

    @pytest.mark.asyncio
    async def test_explicit_index(self, pool):
        await pool.new_tab()
        second = await pool.new_tab()
        tab = await pool.get_active(0)
        assert tab is pool.tabs[0]
        assert pool.active_index == second

    @pytest.mark.asyncio
    async def test_out_of_range_index(self, pool):
        await pool.new_tab()
        with pytest.raises(ValidationError, match="Valid range: 0-0"):
            await pool.get_active(3)
        with pytest.raises(ValidationError):
            await pool.select_tab(-1)

    @pytest.mark.asyncio
    async def test_new_tab_becomes_active(self, pool):
        await pool.new_tab()
        index = await pool.new_tab()
        assert index == 1
        assert pool.active_index == 1


class TestClose:
    @pytest.mark.asyncio
    async def test_close_without_index_targets_active(self, pool):
        for _ in range(3):
            await pool.new_tab()
        await pool.select_tab(1)
        victim = pool.tabs[1].page
        closed = await pool.close_tab()
        assert closed == 1
        assert victim.closed
        assert len(pool) == 2
        assert pool.active_index == 1

    @pytest.mark.asyncio
    async def test_closing_last_active_moves_pointer_to_last(self, pool):
        for _ in range(3):
            await pool.new_tab()
        await pool.close_tab(2)
        assert pool.active_index == 1

    @pytest.mark.asyncio
    async def test_closing_earlier_tab_keeps_active_page(self, pool):
        for _ in range(3):
            await pool.new_tab()
        active_page = pool.tabs[2].page
        await pool.close_tab(0)
        assert pool.tabs[pool.active_index].page is active_page

    @pytest.mark.asyncio
    async def test_externally_closed_page_removed_everywhere(self, pool, recorder):
        tab, _ = await pool.create_tab()
        await tab.page.close()
        assert len(pool) == 0
        assert not recorder.is_tracking(tab.page)
        assert pool.active_index == 0

    @pytest.mark.asyncio
    async def test_crashed_page_removed(self, pool, recorder):
        tab, _ = await pool.create_tab()
        tab.page.emit("crash", tab.page)
        assert len(pool) == 0
        assert not recorder.is_tracking(tab.page)

    @pytest.mark.asyncio
    async def test_list_tabs(self, pool):
        await pool.new_tab()
        await pool.new_tab()
        pool.tabs[0].page.title_text = "First"
        listing = await pool.list_tabs()
        assert listing[0] == {"index": 0, "active": False, "url": "about:blank", "title": "First"}
        assert listing[1]["active"] is True

    @pytest.mark.asyncio
    async def test_set_viewport_applies_to_all(self, pool):
        await pool.new_tab()
        await pool.new_tab()
        await pool.set_viewport({"width": 800, "height": 600})
        assert all(t.page.viewport == {"width": 800, "height": 600} for t in pool.tabs)
        tab, _ = await pool.create_tab()
        assert tab.page.viewport == {"width": 800, "height": 600}

    @pytest.mark.asyncio
    async def test_close_all(self, pool, context):
        for _ in range(3):
            await pool.new_tab()
        await pool.close_all()
        assert len(pool) == 0
        assert context.pages == []

    @pytest.mark.asyncio
    async def test_adopt_existing_page(self, pool, context):
        page = await context.new_page()
        assert await pool.adopt(page) == 0
        assert await pool.adopt(page) == 0
        assert len(pool) == 1
