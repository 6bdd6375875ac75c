"""Taskchain: workflow automation over a CRM task store."""

from .codec import CorrelationCodec, encode
from .config import EngineSettings, TaskchainConfig, load_config
from .contracts import (
    FireOptions,
    FireResult,
    TriggerEvent,
    WorkflowInstance,
    WorkflowStep,
    WorkflowTemplate,
)
from .dispatch import WorkflowDispatcher
from .engine import WorkflowEngine
from .persistence import get_repository
from .reconstruct import InstanceReconstructor
from .registry import TemplateConfigurationError, TemplateRegistry, default_registry

__version__ = "0.1.0"
__all__ = [
    "CorrelationCodec",
    "EngineSettings",
    "FireOptions",
    "FireResult",
    "InstanceReconstructor",
    "TaskchainConfig",
    "TemplateConfigurationError",
    "TemplateRegistry",
    "TriggerEvent",
    "WorkflowDispatcher",
    "WorkflowEngine",
    "WorkflowInstance",
    "WorkflowStep",
    "WorkflowTemplate",
    "default_registry",
    "encode",
    "get_repository",
    "load_config",
]
