from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from agent.llm import ContentBlock, ModelResponse
from agent.state import RunState
from agent.tools import ToolContext
from container import ContainerCreationError, ContainerGatewayError
from container.models import (
    CommandResult,
    ContainerCreated,
    ContainerStarted,
    FileContent,
    PathTree,
    PreviewURL,
)
from conversation import ConversationStore


def text_response(text: str) -> ModelResponse:
    return ModelResponse(content=[ContentBlock("text", text=text)], stop_reason="end_turn")


def tool_response(name: str, tool_input: dict[str, Any], *, call_id: str = "call-1", text: str | None = None) -> ModelResponse:
    blocks = []
    if text:
        blocks.append(ContentBlock("text", text=text))
    blocks.append(ContentBlock("tool_use", id=call_id, name=name, input=tool_input))
    return ModelResponse(content=blocks, stop_reason="tool_use")


class FakeLLM:
    """Returns queued responses in order; repeats `default` once the queue is empty."""

    def __init__(self, responses: list[ModelResponse] | None = None, default: ModelResponse | None = None) -> None:
        self.responses = list(responses or [])
        self.default = default or text_response("still working")
        self.calls: list[dict[str, Any]] = []

    async def complete(self, binding, system_prompt, messages, tools=None):
        self.calls.append({
            "model": binding.model,
            "system_prompt": system_prompt,
            "messages": messages,
            "tools": tools,
        })
        if self.responses:
            return self.responses.pop(0)
        return self.default


class FakeGateway:
    """In-memory container service. Set `fail_writes` / `fail` to make calls raise."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.files: dict[str, str] = {}
        self.fail_writes: set[str] = set()
        self.fail: set[str] = set()
        self.create_message = "BrowserContainer created successfully"
        self.start_message = "BrowserContainer started successfully"
        self.preview_message = "Preview URL retrieved successfully"
        self.preview_url = "https://preview.example.com"
        self.command_result = CommandResult(stdout="ok", stderr="", exit_code=0)

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if operation in self.fail:
            error_cls = ContainerCreationError if operation == "create_container" else ContainerGatewayError
            raise error_cls(operation, {"details": f"{operation} exploded"}, 500)

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    async def create_container(self, container_name, template_name):
        self._record("create_container", container_name, template_name)
        return ContainerCreated(message=self.create_message, containerName=container_name)

    async def start_container(self, container_name):
        self._record("start_container", container_name)
        return ContainerStarted(message=self.start_message, name=container_name)

    async def get_preview_url(self, container_name, port, is_expo):
        self._record("get_preview_url", container_name, port, is_expo)
        return PreviewURL(message=self.preview_message, previewUrl=self.preview_url)

    async def execute_command(self, container_name, argv):
        self._record("execute_command", container_name, argv)
        return self.command_result

    async def write_file(self, container_name, path, content):
        self._record("write_file", container_name, path)
        if path in self.fail_writes:
            raise ContainerGatewayError("write-file-with-diff", {"details": f"cannot write {path}"}, 500)
        self.files[path] = content
        return {"message": "File written"}

    async def read_file(self, container_name, path):
        self._record("read_file", container_name, path)
        if path not in self.files:
            raise ContainerGatewayError("read-file", "File not found", 404)
        return FileContent(content=self.files[path])

    async def read_path_tree(self, container_name, path):
        self._record("read_path_tree", container_name, path)
        return PathTree(pathTree={"src": ["App.tsx", "main.tsx"]})

    async def start_npm_dev(self, container_name, port):
        self._record("start_npm_dev", container_name, port)
        return f"Dev server started on {port}"

    async def restart_npm_dev(self, container_name, port):
        self._record("restart_npm_dev", container_name, port)
        return f"Dev server restarted on {port}"

    async def check_for_errors(self, container_name):
        self._record("check_for_errors", container_name)
        return {"errors": []}


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def state() -> RunState:
    return RunState()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def tool_context(state: RunState, gateway: FakeGateway, sleeps: list[float]) -> ToolContext:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return ToolContext(
        state=state,
        gateway=gateway,
        start_settle_seconds=10,
        preview_settle_seconds=25,
        sleep=fake_sleep,
    )


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    return ConversationStore(tmp_path / "conversations")
