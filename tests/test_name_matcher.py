from priordeed.utils.name_matcher import NameMatcher


def test_exact_after_noise_removal():
    assert NameMatcher.match("SMITH JOHN", "John Smith, husband and wife") == ("EXACT", 1.0)


def test_added_party_is_superset():
    match_type, score = NameMatcher.match("SMITH JOHN", "SMITH JOHN AND MARY")
    assert match_type in ("SUPERSET", "SUBSET")
    assert score >= 0.9


def test_alias_match():
    assert NameMatcher.match("BOB JONES", "ROBERT JONES")[0] == "ALIAS"


def test_single_shared_surname_does_not_link():
    assert not NameMatcher.are_linked("SMITH JOHN", "SMITH MARY")


def test_typo_links():
    assert NameMatcher.are_linked("GONZALEZ MARIA", "GONZALES MARIA")


def test_entity_suffixes_ignored():
    assert NameMatcher.are_linked("ACME HOLDINGS LLC", "Acme Holdings")


def test_blank_names():
    assert NameMatcher.match("", "SMITH JOHN") == ("NONE", 0.0)
    assert not NameMatcher.are_linked("LLC", "INC")
