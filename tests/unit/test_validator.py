"""Tests for GraphValidator."""

import json

import pytest

from workflow_converter.errors import IssueKind
from workflow_converter.workflow import GraphValidator


@pytest.fixture
def validator():
    return GraphValidator(max_type_version=10)


class TestValidDocuments:

    def test_trigger_and_http_request(self, validator, trigger_http_json):
        result = validator.parse(trigger_http_json)

        assert result.is_valid
        assert result.errors == []
        assert result.metadata.node_count == 2
        assert result.metadata.trigger_count == 1
        assert result.metadata.action_count == 1
        assert result.metadata.execution_order == ["a", "b"]
        assert result.document.node_ids == ["a", "b"]

    def test_accepts_bytes(self, validator, trigger_http_json):
        result = validator.parse(trigger_http_json.encode("utf-8"))

        assert result.is_valid

    def test_connections_keyed_by_name_are_normalized(self, validator, make_node):
        data = {
            "name": "By Name",
            "nodes": [
                make_node("a", "n8n-nodes-base.manualTrigger", name="Start"),
                make_node("b", name="Pass"),
            ],
            "connections": {"Start": {"main": [[{"node": "Pass", "type": "main", "index": 0}]]}},
        }

        result = validator.parse(json.dumps(data))

        assert result.is_valid
        assert result.document.get_downstream_ids("a") == ["b"]
        assert result.metadata.connection_count == 1

    def test_flat_target_list_accepted(self, validator, make_node):
        data = {
            "nodes": [make_node("a", "n8n-nodes-base.manualTrigger"), make_node("b")],
            "connections": {"a": {"main": [{"node": "b", "index": 0}]}},
        }

        result = validator.parse(json.dumps(data))

        assert result.document.get_upstream_ids("b") == ["a"]

    def test_branch_position_becomes_output_index(self, validator, branching_workflow):
        result = validator.parse(json.dumps(branching_workflow))

        targets = result.document.connections["check"]["main"]
        assert [(t.node, t.output_index) for t in targets] == [("accept", 0), ("reject", 1)]

    def test_missing_name_defaults(self, validator, make_node):
        data = {"nodes": [make_node("a", "n8n-nodes-base.manualTrigger")], "connections": {}}

        result = validator.parse(json.dumps(data))

        assert result.is_valid
        assert result.document.name == "Unnamed Workflow"
        assert any("workflow name" in w for w in result.warning_messages)

    def test_no_trigger_warns(self, validator, make_workflow, make_node):
        result = validator.parse(json.dumps(make_workflow([make_node("a")])))

        assert result.is_valid
        assert "Workflow has no trigger node" in result.warning_messages


class TestDocumentErrors:

    @pytest.mark.parametrize(
        "text, message",
        [
            ("", "Workflow document is empty"),
            ("   ", "Workflow document is empty"),
            ("{not json", "Invalid JSON"),
            ("[]", "Workflow document must be a JSON object"),
            ('{"connections": {}}', "Missing required property: nodes"),
            ('{"nodes": [{"id": "a"}]}', "Missing required property: connections"),
            ('{"nodes": [], "connections": {}}', "Workflow must contain at least one node"),
        ],
    )
    def test_fatal_document_errors(self, validator, text, message):
        result = validator.parse(text)

        assert not result.is_valid
        assert result.is_fatal
        assert result.document is None
        assert any(message in m for m in result.error_messages)
        assert all(issue.kind == IssueKind.DOCUMENT for issue in result.errors)

    def test_node_without_id(self, validator, make_node):
        node = make_node("a")
        del node["id"]
        result = validator.parse(json.dumps({"nodes": [node], "connections": {}}))

        assert "Node at index 0 missing required property: id" in result.error_messages

    def test_node_without_type(self, validator, make_node):
        node = make_node("a")
        del node["type"]
        result = validator.parse(json.dumps({"nodes": [node], "connections": {}}))

        assert "Node 'a' missing required property: type" in result.error_messages

    def test_duplicate_node_ids(self, validator, make_node):
        data = {"nodes": [make_node("a"), make_node("a", name="Other")], "connections": {}}

        result = validator.parse(json.dumps(data))

        assert "Duplicate node ID: a" in result.error_messages
        assert result.document is None

    def test_dangling_connection_target(self, validator, make_workflow, make_node):
        data = make_workflow([make_node("a", "n8n-nodes-base.manualTrigger")], [("a", "ghost")])

        result = validator.parse(json.dumps(data))

        assert "Invalid connection reference: node 'ghost' does not exist" in result.error_messages
        assert result.is_fatal

    def test_dangling_connection_source(self, validator, make_node):
        data = {
            "nodes": [make_node("a", "n8n-nodes-base.manualTrigger")],
            "connections": {"ghost": {"main": [[{"node": "a"}]]}},
        }

        result = validator.parse(json.dumps(data))

        assert "Invalid connection reference: node 'ghost' does not exist" in result.error_messages

    def test_negative_connection_index(self, validator, make_workflow, make_node):
        data = make_workflow(
            [make_node("a", "n8n-nodes-base.manualTrigger"), make_node("b")],
            [("a", "b", 0, -1)],
        )

        result = validator.parse(json.dumps(data))

        assert result.is_fatal
        assert any("Invalid connection index" in m for m in result.error_messages)


class TestCycles:

    def test_two_node_cycle_is_fatal(self, validator, make_workflow, make_node):
        data = make_workflow(
            [make_node("a", "n8n-nodes-base.manualTrigger"), make_node("b")],
            [("a", "b"), ("b", "a")],
        )

        result = validator.parse(json.dumps(data))

        assert not result.is_valid
        assert result.document is None
        cycle_errors = [e for e in result.errors if e.kind == IssueKind.STRUCTURAL]
        assert len(cycle_errors) == 1
        assert "circular dependency" in cycle_errors[0].message.lower()
        assert cycle_errors[0].message.endswith("a -> b -> a")

    def test_removing_cycle_edge_makes_document_valid(self, validator, make_workflow, make_node):
        nodes = [make_node("a", "n8n-nodes-base.manualTrigger"), make_node("b"), make_node("c")]
        edges = [("a", "b"), ("b", "c"), ("c", "b")]
        assert not validator.parse(json.dumps(make_workflow(nodes, edges))).is_valid

        result = validator.parse(json.dumps(make_workflow(nodes, edges[:2])))

        assert result.is_valid
        assert result.metadata.execution_order == ["a", "b", "c"]


class TestNodeErrors:

    def test_type_version_above_ceiling(self, make_workflow, make_node):
        validator = GraphValidator(max_type_version=2)
        data = make_workflow(
            [make_node("a", "n8n-nodes-base.manualTrigger"), make_node("b", typeVersion=3)],
            [("a", "b")],
        )

        result = validator.parse(json.dumps(data))

        assert not result.is_valid
        assert not result.is_fatal
        assert result.document is not None
        assert [issue.node_id for issue in result.errors] == ["b"]
        assert "typeVersion 3 exceeds supported maximum 2" in result.errors[0].message

    def test_missing_required_parameter(self, validator, make_workflow, make_node):
        data = make_workflow(
            [
                make_node("a", "n8n-nodes-base.manualTrigger"),
                make_node("b", "n8n-nodes-base.httpRequest"),
            ],
            [("a", "b")],
        )

        result = validator.parse(json.dumps(data))

        assert result.document is not None
        assert "Node 'b': Missing required parameter 'url'" in result.error_messages
        assert result.errors_for("b")[0].kind == IssueKind.NODE

    def test_invalid_choice(self, validator, make_workflow, make_node):
        data = make_workflow(
            [
                make_node("a", "n8n-nodes-base.manualTrigger"),
                make_node("b", "n8n-nodes-base.httpRequest", parameters={"url": "https://x", "method": "FETCH"}),
            ],
            [("a", "b")],
        )

        result = validator.parse(json.dumps(data))

        assert any("must be one of" in m for m in result.error_messages)

    def test_expression_values_are_not_type_checked(self, validator, make_workflow, make_node):
        data = make_workflow(
            [
                make_node("a", "n8n-nodes-base.manualTrigger"),
                make_node(
                    "b",
                    "n8n-nodes-base.httpRequest",
                    parameters={"url": "={{ $env.BASE_URL }}", "timeout": "={{ $env.TIMEOUT }}"},
                ),
            ],
            [("a", "b")],
        )

        result = validator.parse(json.dumps(data))

        assert result.is_valid

    def test_unknown_type_is_only_a_warning(self, validator, make_workflow, make_node):
        data = make_workflow(
            [make_node("a", "n8n-nodes-base.manualTrigger"), make_node("b", "n8n-nodes-base.slack")],
            [("a", "b")],
        )

        result = validator.parse(json.dumps(data))

        assert result.is_valid
        assert "No parameter schema available for node type: n8n-nodes-base.slack" in result.warning_messages

    def test_disabled_node_warns(self, validator, make_workflow, make_node):
        data = make_workflow(
            [make_node("a", "n8n-nodes-base.manualTrigger"), make_node("b", disabled=True)],
            [("a", "b")],
        )

        result = validator.parse(json.dumps(data))

        assert result.is_valid
        assert any(w.node_id == "b" for w in result.warnings)


class TestMetadata:

    def test_env_vars_collected_once(self, validator, make_workflow, make_node):
        nodes = [make_node("t", "n8n-nodes-base.manualTrigger")]
        nodes += [
            make_node(
                f"n{i}",
                "n8n-nodes-base.httpRequest",
                parameters={"url": "https://x", "headers": {"X-Key": "={{ $env.API_KEY }}"}},
            )
            for i in range(5)
        ]

        result = validator.parse(json.dumps(make_workflow(nodes)))

        assert result.metadata.environment_variables == ["API_KEY"]

    def test_complexity_and_credentials(self, validator, make_workflow, make_node):
        data = make_workflow(
            [
                make_node("a", "n8n-nodes-base.manualTrigger"),
                make_node(
                    "b",
                    "n8n-nodes-base.httpRequest",
                    parameters={"url": "https://x"},
                    credentials={"httpHeaderAuth": {"id": "1", "name": "Key"}},
                ),
            ],
            [("a", "b")],
        )

        metadata = validator.parse(json.dumps(data)).metadata

        assert metadata.requires_credentials
        assert metadata.credential_types == ["httpHeaderAuth"]
        assert metadata.node_types == ["n8n-nodes-base.manualTrigger", "n8n-nodes-base.httpRequest"]
        # 2 nodes + 1 connection + 2 * 2 types + 5 for credentials
        assert metadata.complexity == 12

    def test_unknown_trigger_type_counted(self, validator, make_workflow, make_node):
        data = make_workflow([make_node("a", "n8n-nodes-base.emailTrigger"), make_node("b")], [("a", "b")])

        metadata = validator.parse(json.dumps(data)).metadata

        assert metadata.trigger_count == 1
