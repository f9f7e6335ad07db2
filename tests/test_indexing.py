"""Tests for single-document indexing and full reindex."""
import logging
import threading

import pytest

from menusearch.errors import RecordsUnavailable, ReindexInProgress, SearchUnavailable
from menusearch.indexing import prepare_product_document
from menusearch.models import EntityKind, Product, Venue, VenueSummary


def _product(**overrides):
    data = {"id": "7", "venueId": "100", "name": "Choripan", "price": 6.5, "category": "Sandwiches"}
    data.update(overrides)
    return Product.model_validate(data)


class TestDocuments:
    def test_empty_description_gets_placeholder(self):
        document = prepare_product_document(_product(description=""), "Sin descripción")
        assert document["description"] == "Sin descripción"

    def test_explicit_venue_wins_over_embedded(self):
        product = _product(venue={"name": "Old", "cuisine": "Old"})
        document = prepare_product_document(product, "-", VenueSummary(name="New", cuisine="Argentina"))
        assert document["venue"] == {"name": "New", "cuisine": "Argentina"}

    def test_document_without_venue_omits_field(self):
        document = prepare_product_document(_product(), "-")
        assert "venue" not in document
        assert document["venueId"] == "100"
        assert document["suggest"] == {"input": ["Choripan"], "weight": 1}
        assert document["updated_at"]


class TestSingleDocument:
    def test_upsert_twice_leaves_one_document(self, seeded, settings):
        product = _product()
        seeded.indexing.index_product(product)
        seeded.indexing.index_product(product.model_copy(update={"price": 7.0}))

        store = seeded.engine.indices[settings.product_index]
        assert sorted(store) == ["1", "2", "3", "7"]
        assert store["7"]["price"] == 7.0

    def test_upsert_replaces_wholesale(self, seeded, settings):
        seeded.indexing.index_product(_product(description="Con chimichurri", category="Sandwiches"))
        seeded.indexing.index_product(_product(category=None))

        stored = seeded.engine.indices[settings.product_index]["7"]
        assert stored["category"] is None
        assert stored["description"] == settings.description_placeholder

    def test_upsert_fills_venue_from_index(self, seeded, settings):
        seeded.indexing.index_product(_product())
        stored = seeded.engine.indices[settings.product_index]["7"]
        assert stored["venue"] == {"name": "La Parrilla", "cuisine": "Argentina"}

    def test_upsert_with_unknown_venue_omits_venue(self, seeded, settings):
        seeded.indexing.index_product(_product(venueId="999"))
        assert "venue" not in seeded.engine.indices[settings.product_index]["7"]

    def test_delete_is_idempotent(self, seeded, settings):
        assert seeded.indexing.delete_product("1") is True
        assert seeded.indexing.delete_product("1") is False
        assert seeded.indexing.delete_venue("does-not-exist") is False
        assert "1" not in seeded.engine.indices[settings.product_index]

    def test_write_invalidates_cached_results(self, seeded):
        before = seeded.search.search(EntityKind.PRODUCT, "choripan")
        assert before.total == 0
        seeded.indexing.index_product(_product())
        after = seeded.search.search(EntityKind.PRODUCT, "choripan")
        assert [hit.id for hit in after.hits] == ["7"]

    def test_product_reindex_picks_up_venue_changes(self, seeded):
        seeded.search.search(EntityKind.PRODUCT, "burger")
        seeded.indexing.index_venue(Venue(id="100", name="Parrilla Nueva", cuisine="Uruguaya"))
        seeded.indexing.index_product(Product.model_validate({**_product(id="1").model_dump(), "name": "Burger Deluxe"}))

        hit = seeded.search.search(EntityKind.PRODUCT, "burger").hits[0]
        assert hit.source["venue"]["cuisine"] == "Uruguaya"

    def test_failure_is_logged_and_raised(self, seeded, engine, caplog):
        engine.down = True
        with caplog.at_level(logging.ERROR, logger="menusearch.indexing"):
            with pytest.raises(SearchUnavailable):
                seeded.indexing.index_product(_product())
        assert "products 7" in caplog.text

    def test_notify_never_raises(self, seeded, engine, caplog):
        engine.down = True
        with caplog.at_level(logging.ERROR, logger="menusearch.indexing"):
            assert seeded.indexing.notify_upsert(_product()) is False
            assert seeded.indexing.notify_delete(EntityKind.VENUE, "100") is False
        assert "restaurants 100" in caplog.text

    def test_notify_success(self, seeded):
        assert seeded.indexing.notify_upsert(Venue(id="102", name="Sushi Go", cuisine="Japonesa")) is True
        assert seeded.indexing.notify_delete(EntityKind.PRODUCT, "2") is True


class TestReindex:
    def test_counts_and_denormalization(self, container, settings, record_store):
        report = container.indexing.reindex_all()

        assert report.venuesIndexed == 2
        assert report.productsIndexed == 3
        assert report.failures == []
        venues = {venue["id"]: venue for venue in record_store["venues"]}
        for doc in container.engine.indices[settings.product_index].values():
            assert doc["venue"]["cuisine"] == venues[doc["venueId"]]["cuisine"]
            assert doc["venue"]["name"] == venues[doc["venueId"]]["name"]

    def test_no_stale_documents_survive(self, seeded, settings, record_store):
        seeded.indexing.index_product(_product(id="stale"))
        record_store["products"] = record_store["products"][:1]

        seeded.indexing.reindex_all()

        assert sorted(seeded.engine.indices[settings.product_index]) == ["1"]

    def test_venues_are_populated_before_products_are_dropped(self, container, engine, settings):
        snapshots = []
        engine.before_bulk = lambda index: snapshots.append((index, set(engine.indices)))

        container.indexing.reindex_all()

        venue_step, product_step = snapshots
        assert venue_step[0] == settings.venue_index
        assert settings.product_index in venue_step[1]
        assert product_step[0] == settings.product_index
        drops = [call for call in engine.calls if call[0] == "drop"]
        assert len(drops) == 2

    def test_partial_failure_is_reported_not_raised(self, container, engine, record_store, caplog):
        engine.reject_ids = {"2"}
        record_store["products"].append({"id": "bad", "restaurantId": "100", "name": "Broken", "price": -1})

        with caplog.at_level(logging.WARNING, logger="menusearch.indexing"):
            report = container.indexing.reindex_all()

        assert report.productsIndexed == 2
        (failure,) = report.failures
        assert failure.kind == EntityKind.PRODUCT
        assert failure.failed == 2
        assert failure.ids == ["2", "bad"]
        assert "rejected 2 documents" in caplog.text

    def test_orphan_products_are_indexed_without_venue(self, container, settings, record_store):
        record_store["products"].append({"id": "9", "restaurantId": "404", "name": "Huérfano", "price": 1})
        container.indexing.reindex_all()
        assert "venue" not in container.engine.indices[settings.product_index]["9"]

    def test_cache_is_cleared(self, seeded, settings, record_store):
        seeded.search.search(EntityKind.PRODUCT, "burger")
        record_store["products"][0]["available"] = False

        seeded.indexing.reindex_all()

        result = seeded.search.search(EntityKind.PRODUCT, "burger")
        assert "1" not in [hit.id for hit in result.hits]

    def test_records_failure_leaves_indices_untouched(self, seeded, settings, record_store):
        record_store["fail"] = True
        with pytest.raises(RecordsUnavailable):
            seeded.indexing.reindex_all()
        assert len(seeded.engine.indices[settings.product_index]) == 3
        assert not seeded.indexing.reindex_running

    def test_concurrent_reindex_is_rejected(self, container, engine):
        entered = threading.Event()
        release = threading.Event()

        def block(index):
            entered.set()
            release.wait(5)

        engine.before_bulk = block
        worker = threading.Thread(target=container.indexing.reindex_all)
        worker.start()
        try:
            assert entered.wait(5)
            assert container.indexing.reindex_running
            with pytest.raises(ReindexInProgress):
                container.indexing.reindex_all()
        finally:
            engine.before_bulk = None
            release.set()
            worker.join(5)
        assert not container.indexing.reindex_running

    def test_write_during_reindex_lands_after_bulk_load(self, container, engine, settings):
        writer = threading.Thread(
            target=container.indexing.index_product,
            args=(_product(id="1", name="Burger Deluxe", price=99.0),),
        )
        held = []

        def write_mid_load(index):
            if index == settings.product_index and not writer.is_alive():
                writer.start()
                writer.join(0.2)
                held.append(writer.is_alive())

        engine.before_bulk = write_mid_load
        container.indexing.reindex_all()
        writer.join(5)

        assert held == [True]
        store = engine.indices[settings.product_index]
        assert store["1"]["price"] == 99.0
        assert store["1"]["venue"] == {"name": "La Parrilla", "cuisine": "Argentina"}
        assert "mappings" in engine.bodies[settings.product_index]
        assert not container.indexing.reindex_running

    def test_delete_during_reindex_is_not_undone(self, container, engine, settings):
        deleted = []
        writer = threading.Thread(target=lambda: deleted.append(container.indexing.delete_product("2")))

        def delete_mid_load(index):
            if index == settings.product_index and not writer.is_alive():
                writer.start()
                writer.join(0.2)

        engine.before_bulk = delete_mid_load
        container.indexing.reindex_all()
        writer.join(5)

        assert deleted == [True]
        assert "2" not in engine.indices[settings.product_index]
