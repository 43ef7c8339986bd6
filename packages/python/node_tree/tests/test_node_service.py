"""Tests for NodeTreeService: reads, mutations and invariant enforcement."""

import pytest

from factories import StepClock, make_node
from node_tree import (
    CATEGORY,
    SLUG_PATTERN,
    BatchDeleteRejectedError,
    InMemoryNodeRepository,
    InvalidNodeArgumentError,
    NodeConflictError,
    NodeCreate,
    NodeInternalError,
    NodeNotFoundError,
    NodeTreeService,
    NodeTreeSettings,
    NodeUpdate,
    OrderUpdate,
    SlugTakenError,
)


async def _create(service, name, parent=None, **extra):
    return await service.create(NodeCreate(name=name, parent_id=parent, **extra))


async def _snapshot(repo):
    return {node.id: (node.parent_id, node.slug, node.order) for node in await repo.list_all()}


class TestCreate:
    async def test_slug_is_derived_from_the_name(self, category_service):
        tech = await _create(category_service, "Tech")
        ai = await _create(category_service, "AI", tech.id)

        assert tech.slug == "tech"
        assert ai.slug == "ai"
        assert ai.parent_id == tech.id
        assert ai.children == []

    async def test_duplicate_names_get_numbered_slugs(self, category_service):
        first = await _create(category_service, "News")
        second = await _create(category_service, "News")
        third = await _create(category_service, "news!")

        assert [first.slug, second.slug, third.slug] == ["news", "news-1", "news-2"]

    async def test_created_slugs_are_well_formed_and_unique(self, category_service, category_repo):
        for name in ["Hello World", "  Ünïcödé  ", "a_b-c", "科技", "!!!", "Hello-World"]:
            await _create(category_service, name)

        slugs = [node.slug for node in await category_repo.list_all()]
        assert len(set(slugs)) == len(slugs)
        assert all(SLUG_PATTERN.match(slug) for slug in slugs)

    async def test_unusable_name_falls_back_to_kind_name(self, category_service):
        node = await _create(category_service, "科技")
        assert node.slug == "category"

    async def test_explicit_slug_is_normalized_and_made_unique(self, category_service):
        await _create(category_service, "One", slug="featured")
        node = await _create(category_service, "Two", slug="Featured")

        assert node.slug == "featured-1"

    async def test_explicit_slug_without_usable_characters_is_rejected(self, category_service):
        with pytest.raises(InvalidNodeArgumentError):
            await _create(category_service, "Two", slug="???")

    async def test_missing_parent_is_not_found(self, category_service, category_repo):
        with pytest.raises(NodeNotFoundError) as excinfo:
            await _create(category_service, "Orphan", "nope")

        assert excinfo.value.node_id == "nope"
        assert await category_repo.list_all() == []

    async def test_category_payload_rejects_unknown_fields(self, category_service):
        with pytest.raises(InvalidNodeArgumentError):
            await _create(category_service, "Tech", payload={"url": "/tech"})

    async def test_retries_once_when_the_store_reports_a_slug_race(self):
        class RacingRepository(InMemoryNodeRepository):
            def __init__(self):
                super().__init__()
                self.raced = False

            async def insert(self, node):
                if not self.raced:
                    # Another writer grabs the slug between check and insert.
                    self.raced = True
                    await super().insert(make_node("other", slug=node.slug))
                return await super().insert(node)

        service = NodeTreeService(CATEGORY, RacingRepository(), clock=StepClock())
        node = await _create(service, "News")

        assert node.slug == "news-1"

    async def test_exhausted_slug_suffixes_name_the_node(self, category_repo):
        service = NodeTreeService(
            CATEGORY, category_repo, settings=NodeTreeSettings(slug_max_attempts=1)
        )
        await _create(service, "News")

        with pytest.raises(NodeConflictError) as excinfo:
            await _create(service, "News")

        assert excinfo.value.node_name == "News"
        assert excinfo.value.details["slug"] == "news"

    async def test_persistent_slug_races_become_conflicts(self):
        class AlwaysTaken(InMemoryNodeRepository):
            async def insert(self, node):
                raise SlugTakenError(node.slug, node_id=node.id)

        service = NodeTreeService(
            CATEGORY,
            AlwaysTaken(),
            settings=NodeTreeSettings(slug_max_attempts=10, slug_conflict_retries=1),
        )
        with pytest.raises(NodeConflictError):
            await _create(service, "News")


class TestUpdate:
    async def test_reparenting_under_a_descendant_is_rejected(self, category_service, category_repo):
        tech = await _create(category_service, "Tech")
        ai = await _create(category_service, "AI", tech.id)
        ml = await _create(category_service, "ML", ai.id)
        before = await _snapshot(category_repo)

        for target in (ai.id, ml.id):
            with pytest.raises(InvalidNodeArgumentError) as excinfo:
                await category_service.update(tech.id, NodeUpdate(parent_id=target))
            assert excinfo.value.node_id == tech.id

        assert await _snapshot(category_repo) == before

    async def test_self_parenting_is_rejected(self, category_service, category_repo):
        tech = await _create(category_service, "Tech")
        before = await _snapshot(category_repo)

        with pytest.raises(InvalidNodeArgumentError):
            await category_service.update(tech.id, NodeUpdate(parent_id=tech.id))
        assert await _snapshot(category_repo) == before

    async def test_moving_to_a_missing_parent_is_not_found(self, category_service):
        tech = await _create(category_service, "Tech")
        with pytest.raises(NodeNotFoundError):
            await category_service.update(tech.id, NodeUpdate(parent_id="ghost"))

    async def test_valid_move_and_move_back_to_root(self, category_service):
        tech = await _create(category_service, "Tech")
        news = await _create(category_service, "News")

        moved = await category_service.update(news.id, NodeUpdate(parent_id=tech.id))
        assert moved.parent_id == tech.id
        assert moved.version == 2

        back = await category_service.update(news.id, NodeUpdate.model_validate({"parent_id": None}))
        assert back.parent_id is None

    async def test_omitted_parent_is_left_alone(self, category_service):
        tech = await _create(category_service, "Tech")
        ai = await _create(category_service, "AI", tech.id)

        renamed = await category_service.update(ai.id, NodeUpdate(name="Artificial Intelligence"))
        assert renamed.parent_id == tech.id
        assert renamed.name == "Artificial Intelligence"
        assert renamed.slug == "ai"

    async def test_slug_change_is_made_unique_excluding_self(self, category_service):
        await _create(category_service, "Tech")
        news = await _create(category_service, "News")

        same = await category_service.update(news.id, NodeUpdate(slug="news"))
        assert same.slug == "news"
        changed = await category_service.update(news.id, NodeUpdate(slug="tech"))
        assert changed.slug == "tech-1"

    async def test_update_returns_current_children(self, category_service):
        tech = await _create(category_service, "Tech")
        await _create(category_service, "AI", tech.id)

        updated = await category_service.update(tech.id, NodeUpdate(order=3))
        assert updated.order == 3
        assert [child.name for child in updated.children] == ["AI"]
        assert updated.child_count == 1

    async def test_stale_expected_version_is_a_conflict(self, category_service):
        tech = await _create(category_service, "Tech")
        await category_service.update(tech.id, NodeUpdate(order=1, expected_version=1))

        with pytest.raises(NodeConflictError):
            await category_service.update(tech.id, NodeUpdate(order=2, expected_version=1))

    async def test_missing_node_is_not_found(self, category_service):
        with pytest.raises(NodeNotFoundError):
            await category_service.update("ghost", NodeUpdate(name="x"))


class TestDelete:
    async def test_parent_with_children_cannot_be_deleted(self, category_service, category_repo):
        a = await _create(category_service, "A")
        b = await _create(category_service, "B", a.id)

        with pytest.raises(NodeConflictError) as excinfo:
            await category_service.delete(a.id)
        assert excinfo.value.node_name == "A"
        assert excinfo.value.details["children"] == [{"id": b.id, "name": "B"}]
        assert len(await category_repo.list_all()) == 2

        assert (await category_service.delete(b.id)).success
        assert (await category_service.delete(a.id)).success
        assert await category_repo.list_all() == []

    async def test_deleting_a_leaf_removes_exactly_one_record(self, category_service, category_repo):
        await _create(category_service, "A")
        leaf = await _create(category_service, "B")

        await category_service.delete(leaf.id)
        assert [node.name for node in await category_repo.list_all()] == ["A"]

    async def test_missing_node_is_not_found(self, category_service):
        with pytest.raises(NodeNotFoundError):
            await category_service.delete("ghost")


class TestBatchDelete:
    async def test_batch_is_all_or_nothing(self, category_service, category_repo):
        x = await _create(category_service, "X")
        y = await _create(category_service, "Y")
        await _create(category_service, "Y child", y.id)

        with pytest.raises(BatchDeleteRejectedError) as excinfo:
            await category_service.batch_delete([x.id, y.id])

        assert excinfo.value.code == "conflict"
        assert [failure.node_id for failure in excinfo.value.failures] == [y.id]
        assert len(await category_repo.list_all()) == 3

    async def test_every_failing_id_is_reported(self, category_service):
        x = await _create(category_service, "X")
        await _create(category_service, "X child", x.id)

        with pytest.raises(BatchDeleteRejectedError) as excinfo:
            await category_service.batch_delete([x.id, "ghost"])

        codes = {failure.node_id: failure.code for failure in excinfo.value.failures}
        assert codes == {x.id: "conflict", "ghost": "not_found"}

    async def test_leaves_are_deleted_together(self, category_service, category_repo):
        x = await _create(category_service, "X")
        y = await _create(category_service, "Y")
        keep = await _create(category_service, "Keep")

        result = await category_service.batch_delete([x.id, y.id, x.id])

        assert result.success and result.deleted_count == 2
        assert [node.id for node in await category_repo.list_all()] == [keep.id]

    async def test_empty_batch_is_invalid(self, category_service):
        with pytest.raises(InvalidNodeArgumentError):
            await category_service.batch_delete([])


class TestReorder:
    async def test_failures_do_not_block_other_items(self, category_service, category_repo):
        a = await _create(category_service, "A")
        b = await _create(category_service, "B")

        result = await category_service.update_order(
            [OrderUpdate(id=a.id, order=2), OrderUpdate(id="ghost", order=0), OrderUpdate(id=b.id, order=1)]
        )

        assert not result.success
        assert result.updated == 2
        assert [(failure.id, failure.code) for failure in result.failures] == [("ghost", "not_found")]
        assert [node.id for node in await category_repo.list_all()] == [b.id, a.id]

    async def test_storage_failures_are_reported_per_item(self):
        class FlakyRepository(InMemoryNodeRepository):
            async def update(self, node_id, changes, *, expected_version=None):
                if node_id == "bad":
                    raise NodeInternalError("Storage failure during update", node_id=node_id)
                return await super().update(node_id, changes, expected_version=expected_version)

        repo = FlakyRepository([make_node("good"), make_node("bad")])
        service = NodeTreeService(CATEGORY, repo)
        result = await service.update_order([OrderUpdate(id="good", order=1), OrderUpdate(id="bad", order=2)])

        assert result.updated == 1
        assert result.failures[0].code == "internal"


class TestReads:
    async def test_tree_orders_siblings(self, category_service):
        tech = await _create(category_service, "Tech", order=1)
        news = await _create(category_service, "News", order=0)
        ai = await _create(category_service, "AI", tech.id)
        web = await _create(category_service, "Web", tech.id)

        tree = await category_service.tree()

        assert [node.id for node in tree] == [news.id, tech.id]
        # Same order: the newer sibling comes first.
        assert [node.id for node in tree[1].children] == [web.id, ai.id]

    async def test_list_filters_and_counts(self, category_service):
        tech = await _create(category_service, "Tech")
        ai = await _create(category_service, "AI", tech.id)
        await _create(category_service, "ML", ai.id)

        everything = await category_service.list()
        roots = await category_service.list(roots_only=True)
        children = await category_service.list(tech.id, include_children=True)

        assert len(everything) == 3
        assert [(node.id, node.child_count) for node in roots] == [(tech.id, 1)]
        assert [node.id for node in children] == [ai.id]
        assert [child.name for child in children[0].children] == ["ML"]

    async def test_by_id_includes_children(self, category_service):
        tech = await _create(category_service, "Tech")
        await _create(category_service, "AI", tech.id)

        node = await category_service.by_id(tech.id)
        assert node.child_count == 1
        with pytest.raises(NodeNotFoundError):
            await category_service.by_id("ghost")

    async def test_parent_options_exclude_self_and_descendants(self, category_service):
        tech = await _create(category_service, "Tech")
        ai = await _create(category_service, "AI", tech.id)
        await _create(category_service, "ML", ai.id)
        news = await _create(category_service, "News")

        all_options = await category_service.parent_options()
        options = await category_service.parent_options(ai.id)

        assert len(all_options) == 4
        assert {option.value for option in options} == {tech.id, news.id}
        assert {option.label for option in options} == {"Tech", "News"}

    async def test_path_lists_ancestors_from_the_root(self, category_service):
        tech = await _create(category_service, "Tech")
        ai = await _create(category_service, "AI", tech.id)
        ml = await _create(category_service, "ML", ai.id)

        path = await category_service.path(ml.id)

        assert path.depth == 2
        assert [node.id for node in path.nodes] == [tech.id, ai.id, ml.id]
        assert path.label == "Tech > AI > ML"

    async def test_generate_slug_previews_the_next_free_slug(self, category_service):
        await _create(category_service, "News")
        preview = await category_service.generate_slug("News")
        assert preview.slug == "news-1"

    async def test_categories_have_no_public_view(self, category_service):
        with pytest.raises(InvalidNodeArgumentError):
            await category_service.public_tree()


class TestMenus:
    async def test_menu_requires_an_explicit_slug(self, menu_service):
        with pytest.raises(InvalidNodeArgumentError):
            await _create(menu_service, "Home", payload={"url": "/"})

    async def test_menu_requires_a_url(self, menu_service):
        with pytest.raises(InvalidNodeArgumentError) as excinfo:
            await _create(menu_service, "Home", slug="home")
        assert excinfo.value.details["errors"][0]["loc"] == ["url"]

    async def test_menu_name_length_is_limited(self, menu_service):
        with pytest.raises(InvalidNodeArgumentError):
            await _create(menu_service, "x" * 51, slug="long", payload={"url": "/"})

    async def test_menu_slug_is_immutable(self, menu_service):
        home = await _create(menu_service, "Home", slug="home", payload={"url": "/"})

        with pytest.raises(NodeConflictError):
            await menu_service.update(home.id, NodeUpdate(slug="start"))
        unchanged = await menu_service.update(home.id, NodeUpdate(slug="home", name="Start"))
        assert unchanged.slug == "home"

    async def test_payload_updates_are_merged_and_validated(self, menu_service):
        home = await _create(menu_service, "Home", slug="home", payload={"url": "/", "icon": "house"})

        updated = await menu_service.update(home.id, NodeUpdate(payload={"is_visible": False}))
        assert updated.payload["icon"] == "house"
        assert updated.payload["is_visible"] is False

        with pytest.raises(InvalidNodeArgumentError):
            await menu_service.update(home.id, NodeUpdate(payload={"url": ""}))

    async def test_public_tree_hides_invisible_subtrees_and_internals(self, menu_service):
        docs = await _create(menu_service, "Docs", slug="docs", payload={"url": "/docs"})
        await _create(menu_service, "API", docs.id, slug="api", payload={"url": "/docs/api"})
        hidden = await _create(
            menu_service, "Drafts", slug="drafts", payload={"url": "/drafts", "is_visible": False}
        )
        await _create(menu_service, "Draft A", hidden.id, slug="draft-a", payload={"url": "/drafts/a"})

        public = await menu_service.public_tree()

        assert [node.slug for node in public] == ["docs"]
        assert [child.slug for child in public[0].children] == ["api"]
        dumped = public[0].model_dump()
        assert "is_visible" not in dumped["payload"]
        assert "created_at" not in dumped and "version" not in dumped
