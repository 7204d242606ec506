import dataclasses

import pytest

from svcwatch.discovery.service_record import (
    ServiceRecord,
    join_type_and_domain,
    validate_search_scope,
)

HTTP_TYPE = "_http._tcp."
LOCAL = "local."


def test_equal_records_share_identity() -> None:
    a = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    b = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    assert a == b
    assert hash(a) == hash(b)
    assert a.key == ("printer1", HTTP_TYPE, LOCAL)


def test_identity_is_case_sensitive() -> None:
    assert ServiceRecord("Printer1", HTTP_TYPE, LOCAL) != ServiceRecord(
        "printer1", HTTP_TYPE, LOCAL
    )
    assert ServiceRecord("printer1", "_HTTP._tcp.", LOCAL) != ServiceRecord(
        "printer1", HTTP_TYPE, LOCAL
    )


def test_record_is_immutable() -> None:
    record = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.name = "other"  # type: ignore[misc]


def test_empty_name_is_allowed() -> None:
    assert ServiceRecord("", HTTP_TYPE, LOCAL).name == ""


@pytest.mark.parametrize(
    "service_type, domain",
    [("", LOCAL), (HTTP_TYPE, ""), (None, LOCAL), (HTTP_TYPE, None)],
)
def test_missing_type_or_domain_rejected(service_type, domain) -> None:
    with pytest.raises(ValueError):
        ServiceRecord("printer1", service_type, domain)


def test_non_string_fields_rejected() -> None:
    with pytest.raises(TypeError, match="name must be str"):
        ServiceRecord(42, HTTP_TYPE, LOCAL)  # type: ignore[arg-type]
    with pytest.raises(TypeError, match="domain must be str"):
        validate_search_scope(HTTP_TYPE, b"local.")


def test_full_name() -> None:
    record = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    assert record.full_name == "printer1._http._tcp.local."


def test_join_type_and_domain_normalizes_dots() -> None:
    assert join_type_and_domain("_http._tcp.", "local.") == "_http._tcp.local."
    assert join_type_and_domain("_http._tcp", "local.") == "_http._tcp.local."
    assert join_type_and_domain("_http._tcp.", ".local.") == "_http._tcp.local."


def test_from_full_name_splits_instance_name() -> None:
    record = ServiceRecord.from_full_name(
        "Office Printer._ipp._tcp.local.", "_ipp._tcp.", LOCAL
    )
    assert record == ServiceRecord("Office Printer", "_ipp._tcp.", LOCAL)


def test_from_full_name_keeps_dots_in_instance_name() -> None:
    record = ServiceRecord.from_full_name(
        "my.device._http._tcp.local.", HTTP_TYPE, LOCAL
    )
    assert record.name == "my.device"


def test_from_full_name_without_trailing_dot() -> None:
    record = ServiceRecord.from_full_name(
        "printer1._http._tcp.local", HTTP_TYPE, LOCAL
    )
    assert record == ServiceRecord("printer1", HTTP_TYPE, LOCAL)


def test_from_full_name_ignores_case_of_suffix() -> None:
    record = ServiceRecord.from_full_name(
        "Printer1._HTTP._tcp.LOCAL.", HTTP_TYPE, LOCAL
    )
    assert record == ServiceRecord("Printer1", HTTP_TYPE, LOCAL)


def test_from_full_name_round_trips_full_name() -> None:
    record = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    assert (
        ServiceRecord.from_full_name(record.full_name, HTTP_TYPE, LOCAL)
        == record
    )


def test_from_full_name_rejects_other_type() -> None:
    with pytest.raises(ValueError, match="is not an instance of"):
        ServiceRecord.from_full_name(
            "printer1._ipp._tcp.local.", HTTP_TYPE, LOCAL
        )
