from storecore.services.affiliate_service import AffiliateService

from .conftest import AFFILIATES_TABLE


def make_service(airtable):
    return AffiliateService(airtable, table=AFFILIATES_TABLE)


def test_valid_code_is_case_insensitive(airtable):
    result = make_service(airtable).validate("  save10 ")
    assert result == {"valid": True, "code": "SAVE10", "discount": 10.0, "name": "Partner", "id": "recAff1"}


def test_lookup_bypasses_cache(airtable):
    make_service(airtable).validate("SAVE10")
    _, table, _, use_cache = airtable.calls[-1]
    assert table == AFFILIATES_TABLE
    assert use_cache is False


def test_inactive_code_is_rejected(airtable):
    assert make_service(airtable).validate("old50")["valid"] is False


def test_unknown_and_blank_codes(airtable):
    service = make_service(airtable)
    assert service.validate("NOPE")["valid"] is False
    assert service.validate("")["valid"] is False


def test_lowercase_code_field_and_discount_alias(airtable):
    airtable.tables[AFFILIATES_TABLE].append(
        {"id": "recAff3", "fields": {"code": "Spring", "Discount Percentage": "15%", "Name": "Spring Sale"}}
    )
    result = make_service(airtable).validate("SPRING")
    assert result["valid"] is True
    assert result["discount"] == 15.0
    assert result["name"] == "Spring Sale"


def test_upstream_failure_is_invalid(airtable):
    airtable.fail_reads = True
    assert make_service(airtable).validate("SAVE10")["valid"] is False
