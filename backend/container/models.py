"""
Container Service Models
容器服务数据模型

Response shapes returned by the remote container service.
Only the fields the agent tools read are modelled; unknown fields are kept.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Exact success messages returned by the container service
CONTAINER_CREATED_MESSAGE = "BrowserContainer created successfully"
CONTAINER_STARTED_MESSAGE = "BrowserContainer started successfully"
PREVIEW_URL_MESSAGE = "Preview URL retrieved successfully"


class ServiceResponse(BaseModel):
    """Base for service responses, tolerant of extra fields"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    message: Optional[str] = None


class ContainerCreated(ServiceResponse):
    container_name: Optional[str] = Field(None, alias="containerName")


class ContainerStarted(ServiceResponse):
    name: Optional[str] = None


class PreviewURL(ServiceResponse):
    preview_url: Optional[str] = Field(None, alias="previewUrl")


class CommandResult(BaseModel):
    """Result of a command executed inside a container"""
    model_config = ConfigDict(populate_by_name=True)

    stdout: str = ""
    stderr: str = ""
    exit_code: int = Field(0, alias="exitCode")

    @field_validator("stdout", "stderr", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("exit_code", mode="before")
    @classmethod
    def _code_or_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def failed(self) -> bool:
        """A command only fails when it exits non-zero AND wrote to stderr"""
        return self.exit_code != 0 and bool(self.stderr)


class FileContent(ServiceResponse):
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _content_or_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class PathTree(ServiceResponse):
    path_tree: Any = Field(None, alias="pathTree")

