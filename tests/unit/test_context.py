"""
Tests for context extraction and merging.
"""

import asyncio
import copy
import json

import pytest

from llm_gateway.core.context import ContextUpdater, merge_context
from llm_gateway.core.errors import ContextExtractionFailure, ProviderHttpError
from llm_gateway.models.response import Completion


def replying(content):
    requests = []

    async def complete(request):
        requests.append(request)
        return Completion(content=content)

    complete.requests = requests
    return complete


class TestMergeContext:
    """Test the additive merge."""

    def test_new_keys_added(self):
        assert merge_context({"a": "1"}, {"b": "2"}) == {"a": "1", "b": "2"}

    def test_existing_key_extended(self):
        assert merge_context({"likes": "cats"}, {"likes": "dogs"}) == {"likes": "cats, dogs"}

    def test_repeated_value_not_duplicated(self):
        assert merge_context({"likes": "cats, dogs"}, {"likes": "dogs"}) == {"likes": "cats, dogs"}

    def test_value_already_extended_by_model(self):
        assert merge_context({"likes": "cats"}, {"likes": "cats, dogs"}) == {"likes": "cats, dogs"}

    def test_null_clears_key(self):
        assert merge_context({"a": "1", "b": "2"}, {"a": None}) == {"b": "2"}

    def test_input_not_mutated(self):
        current = {"a": "1"}
        merge_context(current, {"a": "2", "b": "3"})
        assert current == {"a": "1"}


class TestContextUpdater:
    """Test ContextUpdater.extract."""

    @pytest.mark.asyncio
    async def test_extract_merges(self):
        complete = replying(json.dumps({"name": "Ana", "likes": "dogs"}))
        updater = ContextUpdater(complete)

        context = await updater.extract("I'm Ana and I like dogs", "Hi Ana!", {"likes": "cats"})

        assert context == {"likes": "cats, dogs", "name": "Ana"}

    @pytest.mark.asyncio
    async def test_extraction_request(self):
        complete = replying("{}")
        updater = ContextUpdater(complete, model="gpt-4.1-nano")

        await updater.extract("prompt", "answer", {"k": "v"})

        request = complete.requests[0]
        assert request.model == "gpt-4.1-nano"
        assert request.temperature == 0.2
        assert request.response_format == {"type": "json_object"}
        assert request.prompt == "prompt"
        assert [m.content for m in request.history] == ['{"k": "v"}', "answer"]
        assert all(m.role == "assistant" for m in request.history)
        assert request.persist is False

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_context(self):
        """A failing call returns a deep-equal copy and does not raise."""
        async def complete(request):
            raise ProviderHttpError(500, {"error": "down"})

        current = {"a": "1", "nested": {"x": ["y"]}}
        snapshot = copy.deepcopy(current)
        updater = ContextUpdater(complete)

        context, failure = await updater.try_extract("p", "r", current)

        assert context == snapshot
        assert context is not current
        assert current == snapshot
        assert isinstance(failure, ContextExtractionFailure)
        assert failure.code == "context_extraction_failure"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["not json", "[1, 2]", "\"text\""])
    async def test_malformed_output_keeps_context(self, content):
        updater = ContextUpdater(replying(content))
        context = await updater.extract("p", "r", {"a": "1"})
        assert context == {"a": "1"}

    @pytest.mark.asyncio
    async def test_timeout_keeps_context(self):
        async def complete(request):
            await asyncio.sleep(10)

        updater = ContextUpdater(complete, timeout=0.05)
        context, failure = await updater.try_extract("p", "r", {"a": "1"})

        assert context == {"a": "1"}
        assert "timed out" in failure.message

    @pytest.mark.asyncio
    async def test_missing_context(self):
        updater = ContextUpdater(replying("{\"a\": \"1\"}"))
        assert await updater.extract("p", "r", None) == {"a": "1"}
