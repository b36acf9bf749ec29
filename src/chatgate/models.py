"""Data models and schemas for the chatgate gateway."""

from typing import Dict, List, Any, Optional, Union
from pydantic import BaseModel, ConfigDict


class Message(BaseModel):
    """Chat message model."""
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Union[str, List[Dict[str, Any]]]] = None
    name: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    function_call: Optional[Dict[str, Any]] = None


class ChatCompletionPayload(BaseModel):
    """
    Chat completion request as handed to the gateway.

    Parameters the OpenAI API does not define are kept as extras and forwarded
    to the provider untouched.
    """
    model_config = ConfigDict(extra="allow")

    model: str
    messages: List[Message]
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    n: Optional[int] = None
    stream: Optional[bool] = None
    stop: Optional[Union[str, List[str]]] = None
    max_tokens: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    logit_bias: Optional[Dict[str, float]] = None
    user: Optional[str] = None
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    functions: Optional[List[Dict[str, Any]]] = None
    function_call: Optional[Union[str, Dict[str, Any]]] = None
    response_format: Optional[Dict[str, Any]] = None
    seed: Optional[int] = None


OPENAI_PARAMS = frozenset(ChatCompletionPayload.model_fields) - {"messages", "stream"}
