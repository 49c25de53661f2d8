"""Pytest configuration and fixtures."""
import json
import os

import pytest

# Set test environment variables
os.environ["CONVERTER_ENV"] = "test"
os.environ["CONVERTER_LOG_FORMAT"] = "text"
os.environ["CONVERTER_LOG_LEVEL"] = "WARNING"
os.environ["CONVERTER_ANTHROPIC_API_KEY"] = "test-key"
os.environ["CONVERTER_ENHANCEMENT_ENABLED"] = "false"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Each test sees settings and the default registry rebuilt from the environment."""
    from workflow_converter.config import reset_settings
    from workflow_converter.node_registry import reset_default_registry

    reset_settings()
    reset_default_registry()
    yield
    reset_settings()
    reset_default_registry()


@pytest.fixture
def make_node():
    """Build a raw n8n node dict."""

    def _make(node_id, node_type="n8n-nodes-base.noOp", name=None, parameters=None, **extra):
        node = {
            "id": node_id,
            "name": name or node_id,
            "type": node_type,
            "typeVersion": extra.pop("typeVersion", 1),
            "position": extra.pop("position", [0, 0]),
            "parameters": parameters or {},
        }
        node.update(extra)
        return node

    return _make


@pytest.fixture
def make_workflow():
    """Build a raw workflow dict from nodes and (source, target) edges."""

    def _make(nodes, edges=(), name="Test Workflow"):
        connections = {}
        for edge in edges:
            source, target = edge[0], edge[1]
            output_index = edge[2] if len(edge) > 2 else 0
            input_index = edge[3] if len(edge) > 3 else 0
            branches = connections.setdefault(source, {}).setdefault("main", [])
            while len(branches) <= output_index:
                branches.append([])
            branches[output_index].append({"node": target, "type": "main", "index": input_index})
        return {"name": name, "nodes": list(nodes), "connections": connections}

    return _make


@pytest.fixture
def trigger_http_workflow(make_node, make_workflow):
    """manualTrigger a -> httpRequest b."""
    return make_workflow(
        [
            make_node("a", "n8n-nodes-base.manualTrigger", name="Start"),
            make_node(
                "b",
                "n8n-nodes-base.httpRequest",
                name="Fetch",
                parameters={"url": "https://x"},
            ),
        ],
        [("a", "b")],
        name="Trigger And Fetch",
    )


@pytest.fixture
def trigger_http_json(trigger_http_workflow):
    return json.dumps(trigger_http_workflow)


@pytest.fixture
def branching_workflow(make_node, make_workflow):
    """Trigger -> Set -> If -> (Accept | Reject)."""
    return make_workflow(
        [
            make_node("start", "n8n-nodes-base.manualTrigger", name="Start"),
            make_node(
                "greet",
                "n8n-nodes-base.set",
                name="Greet",
                parameters={
                    "operations": [{"name": "greeting", "value": "=Hello {{ $json.name }}"}],
                },
            ),
            make_node(
                "check",
                "n8n-nodes-base.if",
                name="Check Score",
                parameters={
                    "conditions": [
                        {"value1": "={{ $json.score }}", "operation": "larger", "value2": 50},
                    ],
                },
            ),
            make_node("accept", "n8n-nodes-base.noOp", name="Accept"),
            make_node(
                "reject",
                "n8n-nodes-base.set",
                name="Reject",
                parameters={"operations": [{"name": "status", "value": "rejected"}]},
            ),
        ],
        [
            ("start", "greet"),
            ("greet", "check"),
            ("check", "accept", 0),
            ("check", "reject", 1),
        ],
        name="Score Check",
    )


@pytest.fixture
def sample_anthropic_response():
    """Sample Anthropic API response carrying a fenced code block."""
    return {
        "id": "msg_test123",
        "type": "message",
        "role": "assistant",
        "content": [
            {
                "type": "text",
                "text": "```python\nclass FetchNode(BaseNode):\n    pass\n```",
            }
        ],
        "model": "claude-3-5-sonnet-20241022",
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 15,
            "output_tokens": 25,
        },
    }
