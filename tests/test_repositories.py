"""Tests for repository interface discovery and query method extraction."""

from __future__ import annotations

from idxprobe.extract.repositories import (
    AnnotatedQuery,
    DerivedQuery,
    extract_query_methods,
)
from tests.conftest import ORDER_REPOSITORY, USER_ENTITY, USER_REPOSITORY


class TestRepositoryDetection:
    def test_jpa_repository_methods_in_order(self):
        methods = extract_query_methods(USER_REPOSITORY, "UserRepository.java")
        assert [m.name for m in methods] == ["findByEmail", "findByStatus", "findById"]
        assert {m.repository for m in methods} == {"UserRepository"}
        assert {m.entity for m in methods} == {"User"}

    def test_entity_file_has_no_methods(self):
        assert extract_query_methods(USER_ENTITY) == []

    def test_other_repository_bases(self):
        src = (
            "public interface ItemRepo extends CrudRepository<Item, java.util.UUID>,\n"
            "        JpaSpecificationExecutor<Item> {\n"
            "    java.util.List<Item> findBySku(String sku);\n"
            "}\n"
        )
        methods = extract_query_methods(src)
        assert [(m.entity, m.name) for m in methods] == [("Item", "findBySku")]

    def test_repository_definition_annotation(self):
        src = (
            "@RepositoryDefinition(domainClass = Invoice.class, idClass = Long.class)\n"
            "public interface InvoiceLookup {\n"
            "    Invoice findByNumber(String number);\n"
            "}\n"
        )
        methods = extract_query_methods(src)
        assert methods[0].entity == "Invoice"
        assert methods[0].repository == "InvoiceLookup"

    def test_plain_interface_is_ignored(self):
        src = "public interface RepositoryListener { void onSave(Object o); }\n"
        assert extract_query_methods(src) == []

    def test_default_methods_are_not_queries(self):
        src = (
            "public interface TagRepository extends JpaRepository<Tag, Long> {\n"
            "    java.util.List<Tag> findByLabel(String label);\n"
            "    default Tag first() { return findAll().get(0); }\n"
            "}\n"
        )
        assert [m.name for m in extract_query_methods(src)] == ["findByLabel"]


class TestQuerySources:
    def test_derived_and_annotated(self):
        methods = {m.name: m for m in extract_query_methods(ORDER_REPOSITORY, "OrderRepository.java")}
        assert methods["findByCustomerId"].source == DerivedQuery("findByCustomerId")
        older = methods["olderThan"].source
        assert isinstance(older, AnnotatedQuery)
        assert older.text == "SELECT o FROM Order o WHERE o.createdAt < :before"
        assert not older.native

    def test_location_carries_path_and_line(self):
        methods = {m.name: m for m in extract_query_methods(ORDER_REPOSITORY, "OrderRepository.java")}
        loc = methods["findByCustomerId"].location
        assert loc.path == "OrderRepository.java"
        assert loc.line == 11
        assert loc.repository == "OrderRepository"
        assert loc.method == "findByCustomerId"

    def test_native_query_flag(self):
        src = (
            "public interface EventRepository extends JpaRepository<Event, Long> {\n"
            '    @Query(value = "SELECT * FROM events WHERE kind = ?1", nativeQuery = true)\n'
            "    java.util.List<Event> ofKind(String kind);\n"
            "}\n"
        )
        (m,) = extract_query_methods(src)
        assert m.source == AnnotatedQuery("SELECT * FROM events WHERE kind = ?1", native=True)

    def test_concatenated_and_constant_query_strings(self):
        src = (
            "public interface EventRepository extends JpaRepository<Event, Long> {\n"
            '    String BASE = "SELECT e FROM Event e ";\n'
            '    @Query(BASE + "WHERE e.kind = :kind")\n'
            "    java.util.List<Event> ofKind(String kind);\n"
            "}\n"
        )
        (m,) = extract_query_methods(src)
        assert m.source.text == "SELECT e FROM Event e WHERE e.kind = :kind"

    def test_text_block(self):
        src = (
            "public interface EventRepository extends JpaRepository<Event, Long> {\n"
            '    @Query("""\n'
            "        SELECT e FROM Event e\n"
            "        WHERE e.kind = :kind\n"
            '        """)\n'
            "    java.util.List<Event> ofKind(String kind);\n"
            "}\n"
        )
        (m,) = extract_query_methods(src)
        assert "WHERE e.kind = :kind" in m.source.text

    def test_entity_name_placeholder(self):
        src = (
            "public interface EventRepository extends JpaRepository<Event, Long> {\n"
            '    @Query("SELECT e FROM #{#entityName} e WHERE e.kind = ?1")\n'
            "    java.util.List<Event> ofKind(String kind);\n"
            "}\n"
        )
        (m,) = extract_query_methods(src)
        assert m.source.text == "SELECT e FROM Event e WHERE e.kind = ?1"

    def test_non_constant_query_is_skipped(self, caplog):
        src = (
            "public interface EventRepository extends JpaRepository<Event, Long> {\n"
            "    @Query(Queries.BY_KIND)\n"
            "    java.util.List<Event> ofKind(String kind);\n"
            "    java.util.List<Event> findByKind(String kind);\n"
            "}\n"
        )
        with caplog.at_level("WARNING", logger="idxprobe"):
            methods = extract_query_methods(src, "EventRepository.java")
        assert [m.name for m in methods] == ["findByKind"]
        assert "non-constant query" in caplog.text
