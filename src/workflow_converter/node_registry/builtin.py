"""
Built-in node type catalog.

Covers the core n8n nodes the generated runtime can execute natively.
Additional types can be contributed through entry points, see
``NodeTypeRegistry.discover_entry_points``.
"""

from __future__ import annotations

from typing import List

from .models import (
    NodeCategory,
    NodeTypeDescriptor,
    ParameterSchema,
    ParameterType,
    TemplateKind,
)


HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

HTTP_CREDENTIAL_KINDS = [
    "httpBasicAuth",
    "httpDigestAuth",
    "httpHeaderAuth",
    "httpQueryAuth",
    "oAuth1Api",
    "oAuth2Api",
]

STICKY_NOTE_TYPE = "n8n-nodes-base.stickyNote"


def _param(name: str, type_: ParameterType, **kwargs) -> ParameterSchema:
    return ParameterSchema(name=name, type=type_, **kwargs)


def _trigger(type_: str, display_name: str, parameters: List[ParameterSchema]) -> NodeTypeDescriptor:
    return NodeTypeDescriptor(
        type=type_,
        display_name=display_name,
        category=NodeCategory.TRIGGER,
        description="Starts a run and emits the trigger payload",
        parameters=parameters,
        template=TemplateKind.TRIGGER,
    )


def builtin_descriptors() -> List[NodeTypeDescriptor]:
    """Return a fresh list of the built-in descriptors."""
    return [
        _trigger("n8n-nodes-base.manualTrigger", "Manual Trigger", []),
        _trigger(
            "n8n-nodes-base.scheduleTrigger",
            "Schedule Trigger",
            [_param("rule", ParameterType.OBJECT, default={"interval": [{}]})],
        ),
        _trigger(
            "n8n-nodes-base.cron",
            "Cron",
            [
                _param("triggerTimes", ParameterType.OBJECT, default={"item": []}),
                _param("timezone", ParameterType.STRING, default="UTC"),
            ],
        ),
        _trigger(
            "n8n-nodes-base.webhook",
            "Webhook",
            [
                _param("path", ParameterType.STRING, required=True),
                _param(
                    "httpMethod",
                    ParameterType.STRING,
                    default="POST",
                    choices=HTTP_METHODS,
                ),
                _param("responseMode", ParameterType.STRING, default="onReceived"),
            ],
        ),
        NodeTypeDescriptor(
            type="n8n-nodes-base.httpRequest",
            display_name="HTTP Request",
            category=NodeCategory.ACTION,
            description="Sends an HTTP request and returns the decoded response",
            parameters=[
                _param("url", ParameterType.STRING, required=True),
                _param("method", ParameterType.STRING, default="GET", choices=HTTP_METHODS),
                _param("headers", ParameterType.OBJECT, default={}),
                _param("queryParameters", ParameterType.OBJECT),
                _param("headerParameters", ParameterType.OBJECT),
                _param("bodyParameters", ParameterType.OBJECT),
                _param("body", ParameterType.STRING),
                _param("jsonBody", ParameterType.OBJECT),
                _param("timeout", ParameterType.NUMBER, default=30000, minimum=0),
                _param("options", ParameterType.OBJECT, default={}),
            ],
            dependencies=["requests>=2.31"],
            credential_kinds=HTTP_CREDENTIAL_KINDS,
            template=TemplateKind.HTTP_REQUEST,
            runtime_modules=["http"],
        ),
        NodeTypeDescriptor(
            type="n8n-nodes-base.set",
            display_name="Set",
            category=NodeCategory.TRANSFORM,
            description="Assigns fields on the incoming item",
            parameters=[
                _param("operations", ParameterType.ARRAY, required=True),
                _param(
                    "options",
                    ParameterType.OBJECT,
                    default={"dotNotation": True, "keepOnlySet": False},
                ),
            ],
            template=TemplateKind.SET,
        ),
        NodeTypeDescriptor(
            type="n8n-nodes-base.code",
            display_name="Code",
            category=NodeCategory.TRANSFORM,
            description="Runs user Python code in a restricted interpreter",
            parameters=[
                _param("pythonCode", ParameterType.STRING, translate=False),
                _param("jsCode", ParameterType.STRING, translate=False),
                _param(
                    "language",
                    ParameterType.STRING,
                    default="python",
                    choices=["python", "pythonNative", "javaScript"],
                    translate=False,
                    allow_expression=False,
                ),
                _param(
                    "mode",
                    ParameterType.STRING,
                    default="runOnceForAllItems",
                    choices=["runOnceForAllItems", "runOnceForEachItem"],
                    translate=False,
                    allow_expression=False,
                ),
            ],
            dependencies=["RestrictedPython>=7.0"],
            template=TemplateKind.CODE,
            runtime_modules=["sandbox"],
            dynamic_code=True,
        ),
        NodeTypeDescriptor(
            type="n8n-nodes-base.if",
            display_name="If",
            category=NodeCategory.CONDITION,
            description="Routes the item to output 0 (true) or 1 (false)",
            parameters=[
                _param("conditions", ParameterType.ARRAY, required=True),
                _param(
                    "combineOperation",
                    ParameterType.STRING,
                    default="all",
                    choices=["all", "any"],
                ),
            ],
            template=TemplateKind.IF,
        ),
        NodeTypeDescriptor(
            type="n8n-nodes-base.merge",
            display_name="Merge",
            category=NodeCategory.UTILITY,
            description="Combines the outputs of several inputs",
            parameters=[
                _param(
                    "mode",
                    ParameterType.STRING,
                    default="append",
                    choices=["append", "combine", "chooseBranch"],
                ),
                _param("mergeByFields", ParameterType.OBJECT),
            ],
            template=TemplateKind.MERGE,
        ),
        NodeTypeDescriptor(
            type="n8n-nodes-base.wait",
            display_name="Wait",
            category=NodeCategory.ACTION,
            description="Pauses the run, then passes the item through",
            parameters=[
                _param("amount", ParameterType.NUMBER, default=1, minimum=0),
                _param(
                    "unit",
                    ParameterType.STRING,
                    default="seconds",
                    choices=["seconds", "minutes", "hours"],
                ),
            ],
            template=TemplateKind.WAIT,
        ),
        NodeTypeDescriptor(
            type="n8n-nodes-base.noOp",
            display_name="No Operation",
            category=NodeCategory.UTILITY,
            description="Passes the item through unchanged",
            template=TemplateKind.NO_OP,
        ),
        NodeTypeDescriptor(
            type=STICKY_NOTE_TYPE,
            display_name="Sticky Note",
            category=NodeCategory.UTILITY,
            description="Editor annotation",
            parameters=[_param("content", ParameterType.STRING, default="")],
            annotation_only=True,
        ),
    ]


__all__ = [
    "builtin_descriptors",
    "HTTP_METHODS",
    "HTTP_CREDENTIAL_KINDS",
    "STICKY_NOTE_TYPE",
]
