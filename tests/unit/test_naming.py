"""Tests for file name templating."""

import pytest

from image_transform.core.exceptions import TemplateError
from image_transform.core.naming import (
    MissingTokenPolicy,
    replace_literal_substrings,
    sanitize,
    substitute,
)


class TestSubstitute:
    """Tests for substitute."""

    @pytest.mark.parametrize(
        "fmt,data,expected",
        [
            ("{name}@2x.{ext}", {"name": "photo", "ext": "jpg"}, "photo@2x.jpg"),
            ("{name}.{ext}", {"name": "a", "ext": "png"}, "a.png"),
            ("{name}-{name}", {"name": "x"}, "x-x"),
            ("plain", {"name": "x"}, "plain"),
            ("{name}_{version}", {"name": "x"}, "x_{version}"),
            ("{name}", {}, "{name}"),
        ],
    )
    def test_default_policy_keeps_unknown_tokens(self, fmt, data, expected):
        """Known tokens are replaced, unknown ones stay literal."""
        assert substitute(fmt, data) == expected

    @pytest.mark.parametrize(
        "policy,expected",
        [
            (MissingTokenPolicy.EMPTY, "photo_.jpg"),
            (MissingTokenPolicy.NAME, "photo_version.jpg"),
            (MissingTokenPolicy.KEEP, "photo_{version}.jpg"),
        ],
    )
    def test_missing_token_policies(self, policy, expected):
        """Each policy decides what an unknown token becomes."""
        data = {"name": "photo", "ext": "jpg"}
        assert substitute("{name}_{version}.{ext}", data, policy) == expected

    def test_error_policy_raises(self):
        """The error policy refuses unknown tokens."""
        with pytest.raises(TemplateError, match="version"):
            substitute("{version}", {}, MissingTokenPolicy.ERROR)

    def test_values_are_not_rescanned(self):
        """A value that looks like a token is emitted as is."""
        assert substitute("{a}{b}", {"a": "{b}", "b": "x"}) == "{b}x"

    def test_non_word_braces_are_left_alone(self):
        assert substitute("{a b}.{ext}", {"ext": "jpg"}) == "{a b}.jpg"


class TestReplaceLiteralSubstrings:
    """Tests for replace_literal_substrings."""

    def test_replaces_every_occurrence(self):
        assert replace_literal_substrings("a-b-c", {"-": "_"}) == "a_b_c"

    def test_replacements_apply_in_order(self):
        """Later entries see the output of earlier ones."""
        assert replace_literal_substrings("abc", {"a": "b", "b": "c"}) == "ccc"

    def test_braces_are_literal(self):
        assert replace_literal_substrings("img{name}", {"{name}": ""}) == "img"

    @pytest.mark.parametrize("mapping", [None, {}, {"": "x"}])
    def test_empty_mapping_is_identity(self, mapping):
        assert replace_literal_substrings("photo", mapping) == "photo"


class TestSanitize:
    """Tests for sanitize."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("../../etc/passwd", "passwd"),
            ("a:b*c?.jpg", "abc.jpg"),
            ('q"u%o<t>e|s.png', "quotes.png"),
            ("dir\\file.jpg", "file.jpg"),
            ("  spaced.jpg  ", "spaced.jpg"),
            ("photo.jpg", "photo.jpg"),
        ],
    )
    def test_sanitize_examples(self, name, expected):
        assert sanitize(name) == expected

    @pytest.mark.parametrize("name", ["", "dir/", "..", "a/..", "???"])
    def test_nothing_left_raises(self, name):
        """A name that collapses to nothing usable is rejected."""
        with pytest.raises(TemplateError):
            sanitize(name)
