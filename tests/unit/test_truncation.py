"""
Unit tests for response truncation and field exclusion.
"""

import json

from pulse_mcp.utils.truncation import exclude_fields, path_depth, should_expand, truncate_strings


LONG = "x" * 250


class TestPathDepth:

    def test_counts_keys_and_indices(self):
        assert path_depth("") == 0
        assert path_depth("servers") == 1
        assert path_depth("servers[0]") == 2
        assert path_depth("servers[0].server.packages[0]") == 5


class TestTruncateStrings:
    """String and deep-object truncation."""

    def test_short_values_are_untouched(self):
        data = {"name": "short", "count": 3, "flag": True, "none": None}
        assert truncate_strings(data) == data

    def test_long_string_gets_expansion_hint(self):
        result = truncate_strings({"servers": [{"description": LONG}]})
        assert result["servers"][0]["description"] == (
            '[TRUNCATED - use expand_fields: ["servers[].description"] to see full content]'
        )

    def test_exactly_200_characters_is_kept(self):
        value = "y" * 200
        assert truncate_strings({"a": value}) == {"a": value}

    def test_expand_fields_with_wildcard(self):
        result = truncate_strings({"servers": [{"description": LONG}]}, ["servers[].description"])
        assert result["servers"][0]["description"] == LONG

    def test_expand_fields_prefix_covers_children(self):
        result = truncate_strings({"server": {"readme": LONG, "notes": LONG}}, ["server"])
        assert result["server"]["readme"] == LONG
        assert result["server"]["notes"] == LONG

    def test_deep_large_objects_are_replaced(self):
        deep = {"a": {"b": {"c": {"d": {"e": {"k": "v" * 150, "j": "w" * 150, "l": "z" * 150, "m": "q" * 150}}}}}}
        result = truncate_strings(deep)
        assert result["a"]["b"]["c"]["d"]["e"].startswith("[DEEP OBJECT TRUNCATED")
        assert '["a.b.c.d.e"]' in result["a"]["b"]["c"]["d"]["e"]

    def test_deep_small_objects_survive(self):
        deep = {"a": {"b": {"c": {"d": {"e": {"k": "v"}}}}}}
        assert truncate_strings(deep) == deep

    def test_result_remains_serializable(self):
        json.dumps(truncate_strings({"servers": [{"description": LONG, "tags": [LONG]}]}))

    def test_should_expand(self):
        assert should_expand("servers[3].name", ["servers[].name"])
        assert should_expand("servers[3].name.first", ["servers[].name"])
        assert not should_expand("servers[3].names", ["servers[].name"])
        assert not should_expand("", ["servers"])


class TestExcludeFields:

    def test_removes_nested_and_array_paths(self):
        data = {
            "servers": [{"name": "a", "_meta": {"x": 1}}, {"name": "b", "_meta": {"y": 2}}],
            "metadata": {"nextCursor": "abc", "count": 2},
        }
        result = exclude_fields(data, ["servers[]._meta", "metadata.nextCursor"])
        assert result == {"servers": [{"name": "a"}, {"name": "b"}], "metadata": {"count": 2}}

    def test_original_is_not_mutated(self):
        data = {"a": {"b": 1}}
        exclude_fields(data, ["a.b"])
        assert data == {"a": {"b": 1}}

    def test_missing_paths_are_ignored(self):
        data = {"a": 1}
        assert exclude_fields(data, ["b.c", "d[].e"]) == {"a": 1}
