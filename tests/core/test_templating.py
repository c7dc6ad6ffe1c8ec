"""Tests for moredis.core.templating module."""

import pytest
from bson import ObjectId

from moredis.core.errors import TemplateExecutionError, TemplateSyntaxError
from moredis.core.templating import (
    NIL_VALUE,
    NO_VALUE,
    apply_template,
    compile_template,
    execute,
    format_value,
    is_skip_key,
    to_lower,
    to_set,
    to_string,
)


class TestGoldenTemplates:
    """Exact substitution for templates whose fields are all present."""

    @pytest.mark.parametrize(
        ("template", "record", "expected"),
        [
            ("", {}, ""),
            ("{{.field}}", {"field": "value"}, "value"),
            ("text:{{.field}}", {"field": "value"}, "text:value"),
            ("{{toLower .field}}", {"field": "VALUE"}, "value"),
            ("{{.a}}:{{.b}}", {"a": "x", "b": "y"}, "x:y"),
            ("{{.user.email}}", {"user": {"email": "a@b.c"}}, "a@b.c"),
            ("{{.field | toLower}}", {"field": "MiXeD"}, "mixed"),
            ("{{toLower (toString .n)}}", {"n": "ABC"}, "abc"),
            ("{{.count}}", {"count": 3}, "3"),
            ("{{.ratio}}", {"ratio": 2.0}, "2"),
            ("{{.ratio}}", {"ratio": 2.5}, "2.5"),
            ("{{.flag}}", {"flag": True}, "true"),
            ("{{toString ._id}}", {"_id": ObjectId("ffffffffffffffffffffffff")}, "ffffffffffffffffffffffff"),
            ("{{toSet .roles}}", {"roles": {"admin": True, "dev": "false", "ops": "t"}}, "[admin,ops]"),
        ],
    )
    def test_render(self, template, record, expected):
        assert apply_template(template, record) == expected

    def test_compiled_template_is_reusable(self):
        template = compile_template("{{.id}}")
        assert execute(template, {"id": "1"}) == "1"
        assert execute(template, {"id": "2"}) == "2"


class TestMissingFields:
    def test_missing_field_renders_no_value(self):
        assert apply_template("{{.missing}}", {}) == NO_VALUE

    def test_missing_nested_field_renders_no_value(self):
        assert apply_template("{{.a.b}}", {}) == NO_VALUE
        assert apply_template("{{.a.b}}", {"a": {}}) == NO_VALUE

    def test_none_field_renders_no_value(self):
        assert apply_template("{{.field}}", {"field": None}) == NO_VALUE

    def test_no_value_is_embedded_in_surrounding_text(self):
        assert apply_template("key:{{.missing}}", {}) == "key:<no value>"

    def test_missing_field_reaches_function_as_none(self):
        assert apply_template("{{toLower .missing}}", {}) == ""
        assert apply_template("{{toString .missing}}", {}) == NIL_VALUE

    def test_no_context_behaves_like_empty(self):
        assert apply_template("{{.x}}") == NO_VALUE


class TestSyntax:
    def test_comment_is_dropped(self):
        assert apply_template("a{{/* note */}}b", {}) == "ab"

    def test_trim_markers(self):
        assert apply_template("a  {{- .x -}}  b", {"x": "X"}) == "aXb"

    def test_literals(self):
        assert apply_template('{{"quoted"}}', {}) == "quoted"
        assert apply_template("{{`raw`}}", {}) == "raw"
        assert apply_template("{{42}}", {}) == "42"
        assert apply_template("{{false}}", {}) == "false"

    def test_string_literal_through_pipe(self):
        assert apply_template('{{"UP" | toLower}}', {}) == "up"

    def test_dot_is_the_whole_context(self):
        assert apply_template("{{toSet .}}", {"a": True}) == "[a]"

    def test_if_else(self):
        template = compile_template("{{if .active}}on{{else}}off{{end}}")
        assert template.execute({"active": True}) == "on"
        assert template.execute({"active": False}) == "off"
        assert template.execute({}) == "off"

    def test_if_without_else(self):
        assert apply_template("{{if .x}}[{{.x}}]{{end}}", {"x": "1"}) == "[1]"
        assert apply_template("{{if .x}}[{{.x}}]{{end}}", {}) == ""


class TestSyntaxErrors:
    @pytest.mark.parametrize(
        "template",
        [
            "{{()}}",
            "{{nonExistentFunc}}",
            "{{toLower}}",
            "{{toLower .a .b}}",
            "{{.a .b}}",
            "{{.a | .b}}",
            "{{.a",
            "{{/* open",
            '{{"unterminated}}',
            "{{end}}",
            "{{if .a}}x",
            "{{$x}}",
        ],
    )
    def test_rejected_at_compile_time(self, template):
        with pytest.raises(TemplateSyntaxError):
            compile_template(template)

    def test_unknown_function_message(self):
        with pytest.raises(TemplateSyntaxError, match='function "nonExistentFunc" not defined'):
            compile_template("{{nonExistentFunc}}")

    def test_error_carries_template_and_name(self):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            compile_template("{{()}}", name="users:key")
        assert exc_info.value.template == "{{()}}"
        assert exc_info.value.message.startswith("users:key:")


class TestExecutionErrors:
    def test_field_of_non_mapping(self):
        with pytest.raises(TemplateExecutionError):
            apply_template("{{.a.b}}", {"a": "scalar"})


class TestFunctions:
    def test_to_lower(self):
        assert to_lower("ALL CAPS") == "all caps"
        assert to_lower("lower") == "lower"
        assert to_lower(None) == ""
        assert to_lower(["test"]) == ""

    def test_to_string(self):
        assert to_string(ObjectId("ffffffffffffffffffffffff")) == "ffffffffffffffffffffffff"
        assert to_string("string") == "string"
        assert to_string(7) == "7"
        assert to_string(None) == "<nil>"

    def test_to_set(self):
        assert to_set({"a": True, "b": "false", "c": True}) == "[a,c]"
        assert to_set({"c": "1", "a": "TRUE"}) == "[a,c]"
        assert to_set({}) == "[]"

    def test_to_set_rejects_whole_set(self):
        assert to_set({"a": "maybe"}) == ""
        assert to_set({"a": True, "b": 1}) == ""

    def test_to_set_non_mapping(self):
        assert to_set("a,b") == ""
        assert to_set(None) == ""


class TestHelpers:
    def test_format_value(self):
        assert format_value(None) == NO_VALUE
        assert format_value(False) == "false"
        assert format_value(10.0) == "10"

    def test_format_float_switches_to_exponent_form(self):
        assert format_value(1.5) == "1.5"
        assert format_value(123456.0) == "123456"
        assert format_value(1e6) == "1e+06"
        assert format_value(1e20) == "1e+20"
        assert format_value(1.25e21) == "1.25e+21"
        assert format_value(0.0001) == "0.0001"
        assert format_value(0.00001) == "1e-05"
        assert format_value(-2.5) == "-2.5"
        assert format_value(0.0) == "0"
        assert format_value(float("inf")) == "+Inf"

    def test_format_containers(self):
        assert format_value(["a", "b"]) == "[a b]"
        assert format_value([]) == "[]"
        assert format_value({"b": 1, "a": None}) == "map[a:<nil> b:1]"
        assert format_value({"tags": ["x", True]}) == "map[tags:[x true]]"

    def test_is_skip_key(self):
        assert is_skip_key("")
        assert is_skip_key(NO_VALUE)
        assert not is_skip_key("0")
        assert not is_skip_key("false")
        assert not is_skip_key(" ")
