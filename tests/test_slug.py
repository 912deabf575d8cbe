import re

import pytest

from app.utils.slug import disambiguate, slugify


@pytest.mark.parametrize(
    "title, slug",
    [
        ("My Test Post!!", "my-test-post"),
        ("Hello", "hello"),
        ("  Spaces   everywhere  ", "spaces-everywhere"),
        ("Already-hyphenated title", "already-hyphenated-title"),
        ("Café & crème", "caf-crme"),
        ("!!!", "post"),
    ],
)
def test_slugify(title, slug):
    assert slugify(title) == slug


def test_slug_is_truncated():
    assert len(slugify("word " * 60)) == 100


def test_disambiguate():
    assert disambiguate("hello", 1700000000000) == "hello-1700000000000"
    assert re.fullmatch(r"hello-\d{13}", disambiguate("hello"))
