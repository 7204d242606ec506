from svcwatch.discovery.service_event import EventDecision, ServiceEventKind
from svcwatch.discovery.service_record import ServiceRecord
from svcwatch.discovery.service_registry import ServiceRegistry


def make_record(name: str) -> ServiceRecord:
    return ServiceRecord(name, "_http._tcp.", "local.")


class TestServiceRegistry:

    def test_apply_found_is_idempotent(self) -> None:
        registry = ServiceRegistry()
        record = make_record("printer1")

        first = registry.apply_found(record)
        second = registry.apply_found(record)

        assert first == EventDecision.emit(ServiceEventKind.ADDED, record)
        assert first.should_emit
        assert second == EventDecision.suppress(record)
        assert not second.should_emit
        assert registry.snapshot() == [record]

    def test_apply_found_treats_equal_records_as_same(self) -> None:
        registry = ServiceRegistry()
        registry.apply_found(make_record("printer1"))

        assert not registry.apply_found(make_record("printer1")).should_emit
        assert len(registry) == 1

    def test_apply_removed_unknown_record_is_suppressed(self) -> None:
        registry = ServiceRegistry()
        record = make_record("ghost")

        decision = registry.apply_removed(record)

        assert decision == EventDecision.suppress(record)
        assert registry.snapshot() == []

    def test_apply_removed_known_record_emits_once(self) -> None:
        registry = ServiceRegistry()
        record = make_record("printer1")
        registry.apply_found(record)

        first = registry.apply_removed(record)
        second = registry.apply_removed(record)

        assert first == EventDecision.emit(ServiceEventKind.REMOVED, record)
        assert not second.should_emit
        assert record not in registry

    def test_re_add_after_remove_emits_again(self) -> None:
        registry = ServiceRegistry()
        record = make_record("printer1")
        registry.apply_found(record)
        registry.apply_removed(record)

        assert registry.apply_found(record).kind is ServiceEventKind.ADDED

    def test_snapshot_preserves_insertion_order(self) -> None:
        registry = ServiceRegistry()
        names = ["c", "a", "b"]
        for name in names:
            registry.apply_found(make_record(name))
        registry.apply_removed(make_record("a"))
        registry.apply_found(make_record("a"))

        assert [r.name for r in registry.snapshot()] == ["c", "b", "a"]

    def test_snapshot_is_a_copy(self) -> None:
        registry = ServiceRegistry()
        registry.apply_found(make_record("printer1"))

        snapshot = registry.snapshot()
        registry.apply_found(make_record("printer2"))
        snapshot.clear()

        assert [r.name for r in registry.snapshot()] == [
            "printer1",
            "printer2",
        ]

    def test_clear_empties_registry(self) -> None:
        registry = ServiceRegistry()
        registry.apply_found(make_record("printer1"))
        registry.apply_found(make_record("printer2"))

        registry.clear()

        assert registry.snapshot() == []
        assert len(registry) == 0
        assert registry.apply_found(make_record("printer1")).should_emit

    def test_contains_rejects_non_records(self) -> None:
        registry = ServiceRegistry()
        registry.apply_found(make_record("printer1"))

        assert make_record("printer1") in registry
        assert "printer1" not in registry

    def test_same_name_in_other_domain_is_distinct(self) -> None:
        registry = ServiceRegistry()
        registry.apply_found(make_record("printer1"))

        other = ServiceRecord("printer1", "_http._tcp.", "example.com.")
        assert registry.apply_found(other).should_emit
        assert len(registry) == 2
