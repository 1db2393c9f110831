"""Common type definitions for Stepflow.

Type aliases used across models, services and the API.
"""

from collections.abc import Awaitable, Callable
from typing import Any

# JSON-compatible types for API responses and database fields
type JSONDict = dict[str, Any]

# Step configuration is free-form and interpreted only by the remote executor
type StepConfig = dict[str, Any]

# Ordered list of waves, each an ordered list of step IDs
type ExecutionPlan = list[list[str]]

# Resolved environment handed to the remote executor
type Environment = dict[str, str]

# API response types
type MessageResponse = dict[str, str]

# Subscribers may be plain functions or coroutines
type EventCallback = Callable[[Any], None] | Callable[[Any], Awaitable[None]]
type Unsubscribe = Callable[[], None]
