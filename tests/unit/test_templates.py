"""Tests for node module templates."""

import ast

import pytest

from workflow_converter.codegen.templates import render_literal, render_node_module, render_source_lines
from workflow_converter.expressions import CodeExpression
from workflow_converter.mapping import NodeResolver
from workflow_converter.node_registry import NodeTypeRegistry
from workflow_converter.workflow import WorkflowNode

OPTIONS = {"sandbox_timeout_s": 5}


@pytest.fixture
def mapped_node(make_node):
    """Resolve one node built from make_node arguments."""
    resolver = NodeResolver(registry=NodeTypeRegistry.with_builtins(), max_type_version=10)

    def _mapped(*args, **kwargs):
        return resolver.resolve_node(WorkflowNode.model_validate(make_node(*args, **kwargs)))

    return _mapped


class TestRenderLiteral:

    @pytest.mark.parametrize(
        "value, source",
        [
            (None, "None"),
            (True, "True"),
            (3, "3"),
            (2.5, "2.5"),
            ("it's", '"it\'s"'),
            ({}, "{}"),
            ([], "[]"),
            (float("nan"), "float('nan')"),
            (float("-inf"), "float('-inf')"),
        ],
    )
    def test_scalars(self, value, source):
        assert render_literal(value) == source

    def test_code_expression_rendered_as_code(self):
        value = CodeExpression(code="env('API_KEY')", source="={{ $env.API_KEY }}")

        assert render_literal(value) == "env('API_KEY')"

    def test_nested_containers(self):
        value = {"headers": {"X-Key": CodeExpression(code="env('K')", source="$env.K")}, "tags": ["a"]}

        assert render_literal(value, depth=0) == (
            "{\n"
            "    'headers': {\n"
            "        'X-Key': env('K'),\n"
            "    },\n"
            "    'tags': [\n"
            "        'a',\n"
            "    ],\n"
            "}"
        )

    def test_round_trips_through_eval(self):
        value = {"a": [1, 2.5, None, {"b": "c"}], "d": False}

        assert ast.literal_eval(render_literal(value, depth=0)) == value


class TestRenderSourceLines:

    def test_joined_lines(self):
        source = render_source_lines("x = 1\nreturn x")

        assert eval(source) == "x = 1\nreturn x"

    def test_empty_source(self):
        assert render_source_lines("  ") == "None"
        assert render_source_lines(None) == "None"


class TestRenderNodeModule:

    @pytest.mark.parametrize(
        "node_type, parameters",
        [
            ("n8n-nodes-base.manualTrigger", {}),
            ("n8n-nodes-base.webhook", {"path": "hook"}),
            ("n8n-nodes-base.httpRequest", {"url": "={{ $env.BASE_URL }}/users"}),
            ("n8n-nodes-base.set", {"operations": [{"name": "a", "value": "={{ $json.b }}"}]}),
            ("n8n-nodes-base.code", {"pythonCode": "total = 0\nfor entry in items:\n    total += 1\nreturn total"}),
            ("n8n-nodes-base.if", {"conditions": [{"value1": 1, "operation": "equal", "value2": 1}]}),
            ("n8n-nodes-base.merge", {"mode": "combine"}),
            ("n8n-nodes-base.wait", {"amount": 2}),
            ("n8n-nodes-base.noOp", {}),
            ("n8n-nodes-base.slack", {"channel": "#general"}),
        ],
    )
    def test_every_template_parses(self, mapped_node, node_type, parameters):
        source = render_node_module(mapped_node("n1", node_type, name="My Step", parameters=parameters), OPTIONS)

        tree = ast.parse(source)
        classes = [node.name for node in tree.body if isinstance(node, ast.ClassDef)]
        assert classes == ["MyStepNode"]

    def test_class_attributes(self, mapped_node):
        source = render_node_module(
            mapped_node("b", "n8n-nodes-base.httpRequest", name="Fetch", parameters={"url": "https://x"}),
            OPTIONS,
        )

        assert "class FetchNode(BaseNode):" in source
        assert "node_id = 'b'" in source
        assert "node_type = 'n8n-nodes-base.httpRequest'" in source
        assert "disabled = False" in source
        assert "from runtime.http import send_request" in source
        assert "CREDENTIAL_KINDS = []" in source

    def test_expressions_evaluated_in_parameters(self, mapped_node):
        source = render_node_module(
            mapped_node("b", "n8n-nodes-base.httpRequest", parameters={"url": "={{ $env.BASE_URL }}/users"}),
            OPTIONS,
        )

        assert "'url': to_text(env('BASE_URL')) + '/users'," in source

    def test_code_node_constants(self, mapped_node):
        source = render_node_module(
            mapped_node(
                "c",
                "n8n-nodes-base.code",
                parameters={"pythonCode": "return item", "mode": "runOnceForEachItem"},
            ),
            OPTIONS,
        )

        assert "MODE = 'runOnceForEachItem'" in source
        assert "TIMEOUT_S = 5" in source
        assert "'return item'," in source

    def test_code_node_mode_expression_is_rejected_not_emitted(self, mapped_node):
        mapped = mapped_node(
            "c",
            "n8n-nodes-base.code",
            parameters={"pythonCode": "return item", "mode": "={{ $json.mode }}"},
        )

        source = render_node_module(mapped, OPTIONS)

        assert mapped.validation.errors == [
            "Parameter 'mode' must be one of: runOnceForAllItems, runOnceForEachItem"
        ]
        assert "CodeExpression" not in source
        assert "MODE = '={{ $json.mode }}'" in source
        ast.parse(source)

    def test_unsupported_node_is_placeholder(self, mapped_node):
        source = render_node_module(mapped_node("x", "n8n-nodes-base.slack"), OPTIONS)

        assert "Placeholder for unsupported node type n8n-nodes-base.slack" in source
        assert "is not supported; passing input through" in source

    def test_docstring_quotes_are_neutralized(self, mapped_node):
        source = render_node_module(mapped_node("q", name='Say """hi"""'), OPTIONS)

        ast.parse(source)
