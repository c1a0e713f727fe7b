"""
Tests for ExtractionPipeline - operations in, entities and relationships out.
"""

import pytest

from models import EntityType
from pipeline import ExtractionPipeline, parse_operations
from remote import ErrorCategory, HttpStatusError
from repositories import JsonEntityStore


class FakeExtractor:
    """Extraction endpoint stand-in: returns queued payloads, records what it was sent."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.calls = []

    def __call__(self, text, existing_entities, timeout):
        self.calls.append((text, [e.label for e in existing_entities]))
        payload = self.payloads.pop(0)
        if isinstance(payload, BaseException):
            raise payload
        return payload


def create_op(entities, connections=()):
    return {"action": "create", "entities": entities, "connections": list(connections)}


def person(name):
    return {"type": "Person", "properties": {"full_name": name}}


@pytest.fixture
def store():
    return JsonEntityStore()


def make_pipeline(extractor, store, caller, **kwargs):
    return ExtractionPipeline(extractor, store, caller, **kwargs)


class TestCreate:

    def test_two_entities_one_connection(self, store, caller, create_operation):
        pipeline = make_pipeline(FakeExtractor(create_operation), store, caller)
        result = pipeline.run("John Doe founded Acme Corp.")

        assert result.success
        assert [e.label for e in result.created_entities] == ["John Doe", "Acme Corp"]
        assert result.connections_created == 1
        relationship = store.relationships()[0]
        assert relationship.label == "founded"
        assert store.get_entity(relationship.from_id).label == "John Doe"

    def test_rejected_entity_drops_its_connections(self, store, caller):
        payload = {"success": True, "operations": [create_op(
            [{"type": "Spaceship", "properties": {"name": "X"}}, person("Jane Roe")],
            [{"from": 0, "to": 1}],
        )]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")

        assert result.success
        assert [e.label for e in result.created_entities] == ["Jane Roe"]
        assert result.skipped_entities == 1
        assert result.connections_created == 0
        assert store.relationships() == []

    def test_placeholder_name_keeps_index_positions(self, store, caller):
        payload = {"success": True, "operations": [create_op(
            [person("Unknown"), person("John Doe"), person("Jane Roe")],
            [{"from": 1, "to": 2, "relationship": "knows"}, {"from": 0, "to": 2}],
        )]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")

        assert result.connections_created == 1
        relationship = store.relationships()[0]
        assert store.get_entity(relationship.to_id).label == "Jane Roe"

    def test_null_type_is_a_placeholder(self, store, caller):
        payload = {"success": True, "operations": [create_op(
            [{"type": None}, person("John Doe"), {"type": "Company", "properties": {"name": "Acme Corp"}}],
            [{"from": 1, "to": 2, "relationship": "founded"}, {"from": 0, "to": 1}],
        )]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")

        assert [e.label for e in result.created_entities] == ["John Doe", "Acme Corp"]
        assert result.skipped_entities == 1
        assert result.connections_created == 1

    @pytest.mark.parametrize("bad", [{"from": None, "to": 1}, {"from": "0", "to": 1}, {"to": 1}])
    def test_connection_without_integer_endpoint_skipped_alone(self, store, caller, bad):
        payload = {"success": True, "operations": [create_op(
            [person("John Doe"), person("Jane Roe")],
            [bad, {"from": 0, "to": 1, "relationship": "knows"}],
        )]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")

        assert len(result.created_entities) == 2
        assert result.connections_created == 1
        assert store.relationships()[0].label == "knows"

    @pytest.mark.parametrize("connection", [{"from": 5, "to": 0}, {"from": 0, "to": -1}])
    def test_out_of_range_index_skipped(self, store, caller, connection):
        payload = {"success": True, "operations": [create_op([person("John Doe")], [connection])]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")
        assert result.success
        assert result.connections_created == 0

    def test_indices_are_local_to_each_operation(self, store, caller):
        payload = {"success": True, "operations": [
            create_op([person("John Doe"), person("Jane Roe")]),
            create_op([person("Max Mustermann")], [{"from": 0, "to": 1}]),
        ]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")
        # index 1 does not exist in the second operation
        assert result.connections_created == 0
        assert len(result.created_entities) == 3


class TestUpdateAndConnect:

    def test_update_existing(self, store, caller):
        entity = store.create_entity(EntityType.PERSON, {"full_name": "John Doe"})
        payload = {"success": True, "operations": [{
            "action": "update",
            "updates": [{"id": entity.id, "new_properties": {"occupation": "CEO"}},
                        {"id": "missing", "new_properties": {"x": 1}}],
        }]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")

        assert result.updated_entities == 1
        assert store.get_entity(entity.id).properties["occupation"] == "CEO"

    def test_connect_stored_entities(self, store, caller):
        john = store.create_entity(EntityType.PERSON, {"full_name": "John Doe"})
        acme = store.create_entity(EntityType.COMPANY, {"name": "Acme Corp"})
        payload = {"success": True, "operations": [{
            "action": "connect",
            "new_connections": [{"from_id": john.id, "to_id": acme.id, "relationship": "works_at"},
                                {"from_id": john.id, "to_id": "missing"}],
        }]}
        result = make_pipeline(FakeExtractor(payload), store, caller).run("text")

        assert result.connections_created == 1
        assert store.relationships()[0].label == "works_at"


class TestFailures:

    def test_remote_failure_keeps_text(self, store, caller):
        extractor = FakeExtractor(HttpStatusError(401, "invalid key"))
        result = make_pipeline(extractor, store, caller).run("keep me")

        assert not result.success
        assert result.error_category == ErrorCategory.AUTH_FAILURE.value
        assert result.original_text == "keep me"
        assert len(extractor.calls) == 1

    def test_unsuccessful_payload(self, store, caller):
        result = make_pipeline(FakeExtractor({"success": False, "error": "model overloaded"}),
                               store, caller).run("text")
        assert not result.success
        assert result.error_category == ErrorCategory.UNKNOWN.value
        assert "model overloaded" in result.error

    def test_transient_failure_retried(self, store, caller, create_operation):
        extractor = FakeExtractor(HttpStatusError(503), create_operation)
        result = make_pipeline(extractor, store, caller).run("text")
        assert result.success
        assert len(extractor.calls) == 2

    def test_offline_short_circuit(self, store, caller):
        extractor = FakeExtractor()
        result = make_pipeline(extractor, store, caller, is_online=lambda: False).run("text")
        assert not result.success
        assert result.error_category == ErrorCategory.TRANSIENT_NETWORK.value
        assert extractor.calls == []

    def test_unknown_online_state_still_tries(self, store, caller, create_operation):
        extractor = FakeExtractor(create_operation)
        result = make_pipeline(extractor, store, caller, is_online=lambda: None).run("text")
        assert result.success

    def test_store_failure_skips_entity(self, caller, create_operation):
        class BrokenStore(JsonEntityStore):
            def create_entity(self, entity_type, properties):
                if entity_type == EntityType.COMPANY:
                    raise OSError("disk full")
                return super().create_entity(entity_type, properties)

        result = make_pipeline(FakeExtractor(create_operation), BrokenStore(), caller).run("text")
        assert result.success
        assert result.skipped_entities == 1
        assert result.connections_created == 0


class TestChunking:

    def test_empty_text_makes_no_calls(self, store, caller):
        extractor = FakeExtractor()
        result = make_pipeline(extractor, store, caller).run("   ")
        assert result.success
        assert extractor.calls == []

    def test_later_chunks_see_earlier_entities(self, store, caller):
        text = "John Doe runs things.\n\nJane Roe works there."
        extractor = FakeExtractor(
            {"success": True, "operations": [create_op([person("John Doe")])]},
            {"success": True, "operations": [create_op([person("Jane Roe")])]},
        )
        chunks = []
        pipeline = make_pipeline(extractor, store, caller, max_chunk_chars=25)
        result = pipeline.run(text, on_chunk=lambda index, total: chunks.append((index, total)))

        assert chunks == [(0, 2), (1, 2)]
        assert extractor.calls[0][1] == []
        assert extractor.calls[1][1] == ["John Doe"]
        assert len(result.created_entities) == 2

    def test_failure_midway_keeps_earlier_entities(self, store, caller):
        text = "John Doe runs things.\n\nJane Roe works there."
        extractor = FakeExtractor(
            {"success": True, "operations": [create_op([person("John Doe")])]},
            HttpStatusError(400, "bad chunk"),
        )
        result = make_pipeline(extractor, store, caller, max_chunk_chars=25).run(text)

        assert not result.success
        assert [e.label for e in result.created_entities] == ["John Doe"]
        assert result.original_text == text


class TestParseOperations:

    def test_malformed_operations_skipped(self):
        raw = [
            {"action": "delete"},
            "junk",
            {"action": "create", "entities": [person("John Doe")]},
        ]
        operations = parse_operations(raw)
        assert len(operations) == 1
        assert operations[0].entities[0].properties["full_name"] == "John Doe"

    def test_bad_items_do_not_reject_the_operation(self):
        raw = [{"action": "create", "entities": [None, {"type": None, "properties": None}],
                "connections": [{"from": "zero"}, "junk"]}]
        operation = parse_operations(raw)[0]
        assert [e.type for e in operation.entities] == [None, None]
        assert operation.entities[1].properties == {}
        assert len(operation.connections) == 1
        assert operation.connections[0].index_pair is None

    def test_non_list(self):
        assert parse_operations(None) == []
        assert parse_operations({"action": "create"}) == []
