from conftest import DIRECTORY_ID, make_config

from reportdraft.data_sources import InMemoryDirectorySource
from reportdraft.recipients import DirectoryCache, RecipientResolver, dedupe, parse_recipient_keys


def test_parse_recipient_keys_strips_quotes_and_parens():
    assert parse_recipient_keys("('ops_lead'), \"analyst\" ,, a@example.com") == [
        "ops_lead", "analyst", "a@example.com",
    ]
    assert parse_recipient_keys("") == []


def test_dedupe_keeps_first_occurrence():
    assert dedupe(["b", "a", "b", "", "a"]) == ["b", "a"]


def test_role_matches_any_tag_column(directory):
    resolver = RecipientResolver(directory, make_config())
    assert resolver.resolve("ops_lead") == ["lead@example.com", "second@example.com"]


def test_directory_rows_then_direct_addresses_deduplicated(directory):
    resolver = RecipientResolver(directory, make_config())
    result = resolver.resolve("analyst", "lead@example.com", "ops_lead", "x@example.com")
    assert result == ["lead@example.com", "second@example.com", "analyst@example.com", "x@example.com"]


def test_unknown_role_resolves_to_nothing(directory):
    assert RecipientResolver(directory, make_config()).resolve_raw("nobody") == []


def test_column_names_match_case_insensitively(directory):
    config = make_config(recipient_email_column="EMAIL", recipient_tag_columns=["SITE_WISE_ROLE"])
    assert RecipientResolver(directory, config).resolve("ops_lead") == ["lead@example.com"]


def test_missing_email_column_yields_empty_list(directory):
    config = make_config(recipient_email_column="mail")
    assert RecipientResolver(directory, config).resolve("ops_lead", "a@example.com") == []


def test_directory_is_loaded_once_per_cache(directory):
    cache = DirectoryCache()
    resolver = RecipientResolver(directory, make_config(), cache)
    resolver.resolve("ops_lead")
    resolver.resolve("analyst")
    RecipientResolver(directory, make_config(), cache).resolve("ops_lead")
    assert directory.load_count == 1


def test_different_directory_identity_invalidates_cache():
    source = InMemoryDirectorySource({
        DIRECTORY_ID: {"Combined_Long": [{"email": "a@example.com", "site_wise_role": "r"}]},
        "other-sheet": {"Combined_Long": [{"email": "b@example.com", "site_wise_role": "r"}]},
    })
    cache = DirectoryCache()
    first = RecipientResolver(source, make_config(), cache).resolve("r")
    second = RecipientResolver(source, make_config(directory_source_id="other-sheet"), cache).resolve("r")

    assert first == ["a@example.com"]
    assert second == ["b@example.com"]
    assert source.load_count == 2
