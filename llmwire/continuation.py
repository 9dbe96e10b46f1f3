"""
Tool-result continuation.

Providers disagree on how a conversation resumes after tools ran:

* OpenAI (and the Grok / OpenRouter aliases) keep the conversation on the
  server. The follow-up request only references ``previous_response_id`` and
  lists ``function_call_output`` items.
* Anthropic and Gemini keep nothing. The follow-up request replays the whole
  history and appends the results in the vendor's own block shape.

Both paths validate the context before building anything and never reorder
or deduplicate the results.
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from .errors import MissingContinuationContextError
from .providers.base import BaseProviderAdapter, ContinuationMode
from .registry import ProviderRegistry
from .types import ContinuationContext, Message, StandardRequest, ToolResult, WireRequest
from .utils import tool_result_message

logger = logging.getLogger(__name__)


def build_continuation(
    tool_results: Sequence[ToolResult],
    context: Optional[ContinuationContext],
    adapter: BaseProviderAdapter,
) -> WireRequest:
    """
    Build the request that hands tool results back to the model.

    Args:
        tool_results (List[ToolResult]): Results in the order they should be sent.
        context (ContinuationContext): Identifier or history of the prior turn.
        adapter (BaseProviderAdapter): Adapter of the provider being continued.

    Returns:
        WireRequest: The continuation request.

    Raises:
        MissingContinuationContextError: If the context lacks what the provider
            needs (a response id, or a message history).
        InvalidRequestError: If a history-replay request has no model.
    """
    results = list(tool_results)
    if adapter.continuation_mode is ContinuationMode.RESPONSE_ID:
        return _continue_from_response_id(results, context, adapter)
    return _continue_from_history(results, context, adapter)


def _continue_from_response_id(
    results: List[ToolResult],
    context: Optional[ContinuationContext],
    adapter: BaseProviderAdapter,
) -> WireRequest:
    response_id = context.response_id if context is not None else None
    if not isinstance(response_id, str) or not response_id:
        raise MissingContinuationContextError(
            f"{adapter.provider_id} continuation requires the previous response id",
            provider=adapter.provider_id,
            hint="Use ContinuationContext.from_response_id() or from_turn()",
        )
    logger.debug(
        "Continuing %s response %s with %d tool result(s)",
        adapter.provider_id, response_id, len(results),
    )
    return adapter.build_response_continuation(response_id, results, context.request)


def _continue_from_history(
    results: List[ToolResult],
    context: Optional[ContinuationContext],
    adapter: BaseProviderAdapter,
) -> WireRequest:
    history = context.messages if context is not None else None
    if (
        not isinstance(history, (tuple, list))
        or not history
        or not all(isinstance(m, Message) for m in history)
    ):
        raise MissingContinuationContextError(
            f"{adapter.provider_id} continuation requires the prior message history",
            provider=adapter.provider_id,
            hint="Use ContinuationContext.from_history() or from_turn()",
        )

    # call id -> function name, for results that do not name their function
    call_names: Dict[str, str] = {
        tc.call_id: tc.name for msg in history for tc in msg.tool_calls
    }
    appended = tuple(
        tool_result_message(result, name=call_names.get(result.tool_call_id))
        for result in results
    )

    template = context.request or StandardRequest(messages=())
    request = replace(template, messages=tuple(history) + appended)
    logger.debug(
        "Replaying %d message(s) to %s with %d tool result(s)",
        len(history), adapter.provider_id, len(results),
    )
    return adapter.build_request(request)


class ToolContinuationNormalizer:
    """
    Registry-bound front end of :func:`build_continuation`.

    Args:
        registry (ProviderRegistry): Registry used to resolve provider ids.
    """

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    def build(
        self,
        tool_results: Sequence[ToolResult],
        context: Optional[ContinuationContext],
        provider_id: str,
    ) -> WireRequest:
        return build_continuation(tool_results, context, self.registry.get(provider_id))
