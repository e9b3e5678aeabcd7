"""
Agent Tools

Tools the agents call to work inside a remote container. Each tool is a
pydantic parameter model plus an async handler; arguments are validated
before the handler runs, so bad input never reaches the container service.

Error contract:
- Container service failures come back as a failed ToolResult, which the
  model sees as "Error: ..." text
- ContainerCreationError is the only exception a handler lets through; it
  aborts the run
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type
from dataclasses import dataclass, field
import asyncio
import json
import logging
import shlex

from pydantic import BaseModel, ConfigDict, Field

import code_gen_config as config
from container import (
    ContainerGateway,
    ContainerGatewayError,
    ContainerCreationError,
    CONTAINER_CREATED_MESSAGE,
    CONTAINER_STARTED_MESSAGE,
    PREVIEW_URL_MESSAGE,
)

from .state import RunState

logger = logging.getLogger(__name__)


# ============================================
# Tool Result / Context
# ============================================

@dataclass
class ToolResult:
    """Result from tool execution"""
    success: bool
    result: str
    data: Optional[Dict[str, Any]] = None

    def to_content(self) -> str:
        """Convert to string content for LLM"""
        if self.success:
            return self.result
        return f"Error: {self.result}"


@dataclass
class ToolContext:
    """What a tool handler can reach: the run's state and the container service"""
    state: RunState
    gateway: ContainerGateway
    start_settle_seconds: float = config.CONTAINER_START_SETTLE_SECONDS
    preview_settle_seconds: float = config.PREVIEW_URL_SETTLE_SECONDS
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: Type[BaseModel]
    handler: ToolHandler

    def to_claude_tool(self) -> Dict[str, Any]:
        """Tool definition in Claude API format"""
        schema = self.parameters.model_json_schema(by_alias=True)
        schema.pop("title", None)
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": schema,
        }

    def parse_args(self, args: Dict[str, Any]) -> BaseModel:
        """
        Raises:
            pydantic.ValidationError: malformed args (nothing has been called yet)
        """
        return self.parameters.model_validate(args or {})

    async def invoke(self, params: BaseModel, context: ToolContext) -> ToolResult:
        """
        Run the handler with validated params.

        Raises:
            ContainerCreationError: container could not be created
        """
        return await self.handler(params, context)


# ============================================
# Parameter Models
# ============================================

class _ToolParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ContainerParams(_ToolParams):
    container_name: str = Field(..., alias="containerName", description="Name of the container")


class CreateContainerParams(ContainerParams):
    template_name: str = Field(..., alias="templateName", description="Project template, e.g. 'vite-react'")


class PreviewURLParams(ContainerParams):
    port: int = Field(..., description="Port the dev server listens on")
    is_expo: bool = Field(..., alias="isExpo", description="True for React Native + Expo projects")


class TerminalParams(ContainerParams):
    command: str = Field(..., description="Command to run in /app, e.g. 'npm install zod --yes'")


class FileWrite(_ToolParams):
    path: str = Field(..., description="Relative file path, e.g. 'src/App.tsx'")
    content: str = Field(..., description="Full file content")


class WriteFilesParams(ContainerParams):
    files: List[FileWrite] = Field(..., description="Files to write (2-3 per call recommended)")


class FileRef(_ToolParams):
    path: str = Field(..., description="Relative file path")


class ReadFilesParams(ContainerParams):
    files: List[FileRef] = Field(..., description="Files to read")


class PathTreeParams(ContainerParams):
    path: str = Field(..., description="Directory to list, relative to /app")


class DevServerParams(ContainerParams):
    port: int = Field(..., description="Port for the development server")


class NoParams(_ToolParams):
    pass


# ============================================
# Container Lifecycle Tools
# ============================================

async def create_and_start_container(params: CreateContainerParams, ctx: ToolContext) -> ToolResult:
    """
    Create a container from a template, start it and wait for it to settle.

    Raises:
        ContainerCreationError: create call failed or did not confirm creation
    """
    name = params.container_name
    logger.info(f"[Tool] Creating container {name} (template={params.template_name})")

    created = await ctx.gateway.create_container(name, params.template_name)
    if created.message != CONTAINER_CREATED_MESSAGE:
        raise ContainerCreationError("create-browser-container", "Could not create container")

    try:
        started = await ctx.gateway.start_container(name)
    except ContainerGatewayError as e:
        return ToolResult(success=False, result=f"Could not start container: {e.detail_text}")

    await ctx.sleep(ctx.start_settle_seconds)

    if started.message != CONTAINER_STARTED_MESSAGE:
        return ToolResult(success=False, result="Could not start container")

    return ToolResult(
        success=True,
        result=started.name or name,
        data={"containerName": name},
    )


async def get_container_preview_url(params: PreviewURLParams, ctx: ToolContext) -> ToolResult:
    """Fetch the preview URL and cache it in the run state"""
    try:
        preview = await ctx.gateway.get_preview_url(params.container_name, params.port, params.is_expo)
    except ContainerGatewayError as e:
        return ToolResult(success=False, result=e.detail_text)

    if preview.message != PREVIEW_URL_MESSAGE or not preview.preview_url:
        return ToolResult(success=False, result="Could not get preview URL")

    # Preview proxy needs time before the URL serves the app
    await ctx.sleep(ctx.preview_settle_seconds)

    ctx.state.data["containerPreviewURL"] = preview.preview_url
    logger.info(f"[Tool] Preview URL for {params.container_name}: {preview.preview_url}")

    payload = {"containerPreviewURL": preview.preview_url}
    return ToolResult(success=True, result=json.dumps(payload), data=payload)


# ============================================
# Terminal / Dev Server Tools
# ============================================

async def terminal(params: TerminalParams, ctx: ToolContext) -> ToolResult:
    """Run a shell-style command; a non-zero exit only fails if stderr is set"""
    try:
        argv = shlex.split(params.command)
    except ValueError as e:
        return ToolResult(success=False, result=f"Could not parse command: {e}")
    if not argv:
        return ToolResult(success=False, result="Empty command")

    try:
        result = await ctx.gateway.execute_command(params.container_name, argv)
    except ContainerGatewayError as e:
        return ToolResult(success=False, result=e.detail_text)

    status = "failed" if result.failed else "successful"
    transcript = (
        f"Command {status}: \n command: {params.command} \n stdout: {result.stdout} "
        f"\n stderr: {result.stderr} \n exitCode: {result.exit_code}"
    )
    if result.failed:
        logger.warning(f"[Tool] Command failed in {params.container_name}: {params.command}")

    return ToolResult(
        success=not result.failed,
        result=transcript,
        data={"exitCode": result.exit_code},
    )


async def start_npm_dev(params: DevServerParams, ctx: ToolContext) -> ToolResult:
    try:
        message = await ctx.gateway.start_npm_dev(params.container_name, params.port)
    except ContainerGatewayError as e:
        return ToolResult(success=False, result=e.detail_text)
    return ToolResult(success=True, result=message or f"Development server started on port {params.port}")


async def restart_npm_dev(params: DevServerParams, ctx: ToolContext) -> ToolResult:
    try:
        message = await ctx.gateway.restart_npm_dev(params.container_name, params.port)
    except ContainerGatewayError as e:
        return ToolResult(success=False, result=e.detail_text)
    return ToolResult(success=True, result=message or f"Development server restarted on port {params.port}")


async def check_for_errors(params: ContainerParams, ctx: ToolContext) -> ToolResult:
    try:
        report = await ctx.gateway.check_for_errors(params.container_name)
    except ContainerGatewayError as e:
        return ToolResult(success=False, result=e.detail_text)
    return ToolResult(success=True, result=json.dumps(report, ensure_ascii=False), data=report)


# ============================================
# File Tools
# ============================================

async def write_or_update_files(params: WriteFilesParams, ctx: ToolContext) -> ToolResult:
    """
    Write files one at a time, stopping at the first failure.

    Each file is merged into state.files right after its write succeeds, so
    files written before a failure stay recorded. The failing file and any
    file after it are neither written nor recorded.
    """
    written: List[str] = []

    for file in params.files:
        try:
            await ctx.gateway.write_file(params.container_name, file.path, file.content)
        except ContainerGatewayError as e:
            logger.error(f"[Tool] Write failed at {file.path} ({len(written)} written): {e}")
            return ToolResult(
                success=False,
                result=(
                    f"Failed to write {file.path} after writing {len(written)} file(s) "
                    f"{written}: {e.detail_text}"
                ),
                data={"written": written, "failed": file.path},
            )
        ctx.state.merge_file(file.path, file.content)
        written.append(file.path)

    return ToolResult(
        success=True,
        result=f"Successfully wrote {len(written)} file(s): {', '.join(written)}",
        data={"written": written},
    )


async def read_files(params: ReadFilesParams, ctx: ToolContext) -> ToolResult:
    contents = []
    for file in params.files:
        try:
            response = await ctx.gateway.read_file(params.container_name, file.path)
        except ContainerGatewayError as e:
            return ToolResult(success=False, result=f"{file.path}: {e.detail_text}")
        contents.append({"path": file.path, "content": response.content})

    return ToolResult(success=True, result=json.dumps(contents, ensure_ascii=False))


async def read_path_tree(params: PathTreeParams, ctx: ToolContext) -> ToolResult:
    try:
        response = await ctx.gateway.read_path_tree(params.container_name, params.path)
    except ContainerGatewayError as e:
        return ToolResult(success=False, result=e.detail_text)
    return ToolResult(success=True, result=json.dumps(response.path_tree, ensure_ascii=False))


# ============================================
# Design Tools
# ============================================

async def get_base_design(params: NoParams, ctx: ToolContext) -> ToolResult:
    return ToolResult(success=False, result="getBaseDesign is not available yet")


async def create_asset_image(params: NoParams, ctx: ToolContext) -> ToolResult:
    return ToolResult(success=False, result="createAssetImage is not available yet")


# ============================================
# Tool Registry
# ============================================

CREATE_AND_START_CONTAINER = ToolDefinition(
    name="createAndStartContainer",
    description="Create and start a container. Generate a random, unique name for the container.",
    parameters=CreateContainerParams,
    handler=create_and_start_container,
)

GET_CONTAINER_PREVIEW_URL = ToolDefinition(
    name="getContainerPreviewURL",
    description=(
        "Get the preview URL of a container (a proxy to the container's port). "
        "Only use after the container is running and no preview URL is known yet."
    ),
    parameters=PreviewURLParams,
    handler=get_container_preview_url,
)

TERMINAL = ToolDefinition(
    name="terminal",
    description="Use the terminal to run commands. You are already in /app.",
    parameters=TerminalParams,
    handler=terminal,
)

WRITE_OR_UPDATE_FILES = ToolDefinition(
    name="writeOrUpdateFiles",
    description="Write or update files. You can write multiple files at once (recommended 2-3 files at a time).",
    parameters=WriteFilesParams,
    handler=write_or_update_files,
)

READ_FILES = ToolDefinition(
    name="readFiles",
    description="Read files from the container.",
    parameters=ReadFilesParams,
    handler=read_files,
)

READ_PATH_TREE = ToolDefinition(
    name="readPathTree",
    description="Read the path tree of the project, with depth=2.",
    parameters=PathTreeParams,
    handler=read_path_tree,
)

START_NPM_DEV = ToolDefinition(
    name="startNpmDev",
    description="Start the development server. Don't run 'npm run dev' with the terminal tool.",
    parameters=DevServerParams,
    handler=start_npm_dev,
)

RESTART_NPM_DEV = ToolDefinition(
    name="restartNpmDev",
    description="Restart the development server.",
    parameters=DevServerParams,
    handler=restart_npm_dev,
)

CHECK_FOR_ERRORS = ToolDefinition(
    name="checkForErrors",
    description="Check for errors in the project. MUST use this tool every time before starting the development server.",
    parameters=ContainerParams,
    handler=check_for_errors,
)

GET_BASE_DESIGN = ToolDefinition(
    name="getBaseDesign",
    description="Get the base design for the project.",
    parameters=NoParams,
    handler=get_base_design,
)

CREATE_ASSET_IMAGE = ToolDefinition(
    name="createAssetImage",
    description="Create an asset image.",
    parameters=NoParams,
    handler=create_asset_image,
)

CODE_AGENT_TOOLS: List[ToolDefinition] = [
    GET_CONTAINER_PREVIEW_URL,
    TERMINAL,
    WRITE_OR_UPDATE_FILES,
    READ_FILES,
    READ_PATH_TREE,
    CREATE_AND_START_CONTAINER,
    START_NPM_DEV,
    RESTART_NPM_DEV,
    CHECK_FOR_ERRORS,
]

DESIGN_AGENT_TOOLS: List[ToolDefinition] = [
    GET_BASE_DESIGN,
    CREATE_ASSET_IMAGE,
]

ALL_TOOLS: Dict[str, ToolDefinition] = {
    tool.name: tool for tool in CODE_AGENT_TOOLS + DESIGN_AGENT_TOOLS
}
