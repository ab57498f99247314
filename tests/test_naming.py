import pytest

from naming import convert_case


@pytest.mark.parametrize("convention, expected", [
    ("preserve", "user_profiles"),
    ("PascalCase", "UserProfiles"),
    ("camelCase", "userProfiles"),
    ("snake_case", "user_profiles"),
    ("SCREAMING_SNAKE_CASE", "USER_PROFILES"),
])
def test_convert_case(convention, expected):
    assert convert_case("user_profiles", convention) == expected


def test_convert_case_splits_camel_humps():
    assert convert_case("createdAt", "snake_case") == "created_at"
    assert convert_case("createdAt", "PascalCase") == "CreatedAt"


def test_convert_case_ignores_repeated_underscores():
    assert convert_case("__a__b", "camelCase") == "aB"
