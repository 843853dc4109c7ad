import pytest

from m3services.query import Query, QueryError, Token, TokenType, lex, parse


def test_lex_simple():
    tokens = lex("a == 12")
    assert [t.type for t in tokens] == [
        TokenType.FIELD_NAME,
        TokenType.EQUALS,
        TokenType.INT,
    ]
    assert tokens[0] == Token(TokenType.FIELD_NAME, "a")


def test_lex_compound():
    tokens = lex("a == 12 and name != 'nandos'")
    assert [t.type for t in tokens] == [
        TokenType.FIELD_NAME,
        TokenType.EQUALS,
        TokenType.INT,
        TokenType.AND,
        TokenType.FIELD_NAME,
        TokenType.NOT_EQUALS,
        TokenType.STRING,
    ]


def test_lex_rejects_unknown_character():
    with pytest.raises(QueryError):
        lex("a == #")


E = TokenType.EQUALS
NE = TokenType.NOT_EQUALS


@pytest.mark.parametrize(
    "query, expected",
    [
        ('a == 12 and name != "nandos"', [Query("a", E, 12), Query("name", NE, "nandos")]),
        ('a.b.c == 12 and name != "nandos"', [Query("a.b.c", E, 12), Query("name", NE, "nandos")]),
        ('a == 12 and name != "nan\'dos"', [Query("a", E, 12), Query("name", NE, "nan'dos")]),
        (
            "id == '795c1e56-d1f3-495d-b9cb-d84a56ffb39c'",
            [Query("id", E, "795c1e56-d1f3-495d-b9cb-d84a56ffb39c")],
        ),
        ("a == 12 and name != 'nandos'", [Query("a", E, 12), Query("name", NE, "nandos")]),
        ("a == 12 and name != `nandos`", [Query("a", E, 12), Query("name", NE, "nandos")]),
        (
            "a == 12 and name != 'He said \"\"yes\"\"!'",
            [Query("a", E, 12), Query("name", NE, 'He said "yes"!')],
        ),
        ("a < 20", [Query("a", TokenType.LESS_THAN, 20)]),
        ("a <= 20", [Query("a", TokenType.LESS_THAN_EQUALS, 20)]),
        ("a > 20", [Query("a", TokenType.GREATER_THAN, 20)]),
        ("a >= 20", [Query("a", TokenType.GREATER_THAN_EQUALS, 20)]),
    ],
)
def test_parse_cases(query, expected):
    assert parse(query) == expected


def test_parse_booleans():
    result = parse("a == false and b == true")
    assert result == [Query("a", E, False), Query("b", E, True)]
    assert [type(q.value) for q in result] == [bool, bool]


def test_parse_empty():
    assert parse("") == []


def test_parse_rejects_max_rune():
    with pytest.raises(QueryError, match="illegal max rune"):
        parse("a == 1114111")


def test_parse_rejects_string_with_ordering_operator():
    with pytest.raises(QueryError, match="can't be used with strings"):
        parse("name < 'x'")


def test_parse_rejects_bool_with_ordering_operator():
    with pytest.raises(QueryError, match="can't be used with bools"):
        parse("flag > true")


def test_field_names_starting_with_keyword():
    assert parse("android == 1") == [Query("android", E, 1)]