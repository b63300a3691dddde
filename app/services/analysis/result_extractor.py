"""Parse ``return_checklist_results`` callback payloads into result records.

Two payload shapes carry the callback:

* a run in ``requires_action`` whose
  ``required_action.submit_tool_outputs.tool_calls[].function`` holds the
  name and arguments
* a thread message, either with ``content`` items of type ``function``
  (``name`` plus ``function_call`` / ``arguments``) or with a ``tool_calls`` list

Arguments arrive either already structured or as a JSON string.
"""

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.models.compliance import ChecklistResult
from app.prompts.checklist_prompts import RESULT_CALLBACK_NAME
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ResultExtractor:
    """Extracts checklist results and never raises.

    After each call ``last_failure`` holds the reason nothing (or less than
    everything) could be extracted, or None when extraction was clean.
    """

    def __init__(self, callback_name: str = RESULT_CALLBACK_NAME):
        self.callback_name = callback_name
        self.last_failure: Optional[str] = None

    def extract(self, payload: Any) -> List[ChecklistResult]:
        """Results from a run or message payload, empty on any failure."""
        self.last_failure = None
        try:
            for arguments in self._callback_arguments(payload):
                results = self._parse_arguments(arguments)
                if results is not None:
                    return results
            if self.last_failure is None:
                self.last_failure = f"no {self.callback_name} call found"
            return []
        except Exception as e:
            self.last_failure = f"unexpected payload: {e}"
            LOGGER.warning(f"Could not extract checklist results: {e}")
            return []

    def extract_from_messages(self, messages: Iterable[Dict[str, Any]]) -> List[ChecklistResult]:
        """Results from the first assistant message carrying the callback."""
        failure = None
        for message in messages or []:
            if not isinstance(message, dict) or message.get("role") != "assistant":
                continue
            results = self.extract(message)
            if results:
                LOGGER.info(f"Found callback results in message {message.get('id')}")
                return results
            failure = failure or self.last_failure
        self.last_failure = failure or f"no {self.callback_name} call found in messages"
        return []

    @staticmethod
    def pending_call_ids(run_data: Dict[str, Any]) -> List[str]:
        """Ids of the tool calls a ``requires_action`` run is waiting on."""
        tool_calls = (
            ((run_data or {}).get("required_action") or {})
            .get("submit_tool_outputs", {})
            .get("tool_calls")
        ) or []
        return [call["id"] for call in tool_calls if isinstance(call, dict) and call.get("id")]

    @staticmethod
    def plain_text(messages: Iterable[Dict[str, Any]]) -> Optional[str]:
        """Latest assistant text content, used when no callback was made."""
        for message in messages or []:
            if not isinstance(message, dict) or message.get("role") != "assistant":
                continue
            for content in message.get("content") or []:
                if isinstance(content, dict) and content.get("type") == "text":
                    value = (content.get("text") or {}).get("value")
                    if value:
                        return value
        return None

    def _callback_arguments(self, payload: Any) -> Iterator[Any]:
        if not isinstance(payload, dict):
            self.last_failure = f"payload is {type(payload).__name__}, expected an object"
            return

        required_action = payload.get("required_action") or {}
        tool_calls = list((required_action.get("submit_tool_outputs") or {}).get("tool_calls") or [])
        tool_calls.extend(payload.get("tool_calls") or [])

        for call in tool_calls:
            function = call.get("function") if isinstance(call, dict) else None
            if isinstance(function, dict) and function.get("name") == self.callback_name:
                yield function.get("arguments")

        content = payload.get("content")
        if isinstance(content, list):
            for item in content:
                if (
                    isinstance(item, dict)
                    and item.get("type") == "function"
                    and item.get("name") == self.callback_name
                ):
                    yield item.get("function_call") or item.get("arguments")

    def _parse_arguments(self, arguments: Any) -> Optional[List[ChecklistResult]]:
        if isinstance(arguments, (str, bytes)):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as e:
                self.last_failure = f"arguments are not valid JSON: {e}"
                return None

        if not isinstance(arguments, dict) or not isinstance(arguments.get("results"), list):
            self.last_failure = "arguments carry no results list"
            return None

        results = []
        skipped = 0
        for entry in arguments["results"]:
            try:
                results.append(ChecklistResult.model_validate(entry))
            except PydanticValidationError:
                skipped += 1

        if skipped:
            self.last_failure = f"{skipped} malformed result entries skipped"
            LOGGER.warning(f"Skipped {skipped} malformed checklist result entries")
        elif not results:
            self.last_failure = "callback returned an empty results list"
        LOGGER.info(f"Extracted {len(results)} results from {self.callback_name} arguments")
        return results
