"""
Tests for input resolution.
"""

import pytest

from node_banana.core.graph import GraphStore
from node_banana.core.inputs import ResolvedInputs, resolve_inputs
from node_banana.core.node_types import (
    ImageInputData,
    InputRequirements,
    LLMGenerateData,
    NodeKind,
    PromptData,
)


@pytest.fixture
def store():
    store = GraphStore()
    store.add_node(NodeKind.NANO_BANANA, node_id="gen")
    return store


class TestImages:
    """Image fan-in."""

    def test_edge_order_not_node_order(self, store):
        store.add_node(NodeKind.IMAGE_INPUT, ImageInputData(image="first-node"), node_id="a")
        store.add_node(NodeKind.IMAGE_INPUT, ImageInputData(image="second-node"), node_id="b")
        store.connect("b", "image", "gen", "image")
        store.connect("a", "image", "gen", "image")

        assert resolve_inputs(store, "gen").images == ["second-node", "first-node"]

    def test_sources_without_output_are_skipped(self, store):
        store.add_node(NodeKind.IMAGE_INPUT, ImageInputData(image="a"), node_id="a")
        store.add_node(NodeKind.IMAGE_INPUT, node_id="empty")
        store.add_node(NodeKind.ANNOTATION, node_id="ann")
        store.connect("a", "image", "gen", "image")
        store.connect("empty", "image", "gen", "image")
        store.connect("ann", "image", "gen", "image")

        assert resolve_inputs(store, "gen").images == ["a"]

    def test_generated_images_are_read(self, store):
        store.add_node(NodeKind.NANO_BANANA, node_id="upstream")
        store.update_node_data("upstream", output_image="generated")
        store.connect("upstream", "image", "gen", "image")
        assert resolve_inputs(store, "gen").images == ["generated"]

    def test_reference_edges_carry_nothing(self, store):
        store.add_node(NodeKind.IMAGE_INPUT, ImageInputData(image="a"), node_id="a")
        store.connect("a", "reference", "gen", "reference")
        assert resolve_inputs(store, "gen") == ResolvedInputs()


class TestText:
    """Text selection."""

    def test_most_recent_text_edge_wins(self, store):
        store.add_node(NodeKind.PROMPT, PromptData(prompt="older"), node_id="p1")
        store.add_node(NodeKind.PROMPT, PromptData(prompt="newer"), node_id="p2")
        store.connect("p2", "text", "gen", "text")
        store.connect("p1", "text", "gen", "text")

        assert resolve_inputs(store, "gen").text == "older"

    def test_blank_prompt_is_null(self, store):
        store.add_node(NodeKind.PROMPT, PromptData(prompt="   "), node_id="p")
        store.connect("p", "text", "gen", "text")
        assert resolve_inputs(store, "gen").text is None

    def test_active_edge_without_text_is_null(self, store):
        store.add_node(NodeKind.PROMPT, PromptData(prompt="hello"), node_id="p")
        store.add_node(NodeKind.LLM_GENERATE, node_id="llm")
        store.connect("p", "text", "gen", "text")
        store.connect("llm", "text", "gen", "text")
        assert resolve_inputs(store, "gen").text is None

    def test_llm_output_text(self, store):
        store.add_node(NodeKind.LLM_GENERATE, LLMGenerateData(output_text="a cat"), node_id="llm")
        store.connect("llm", "text", "gen", "text")
        assert resolve_inputs(store, "gen").text == "a cat"


class TestMissing:
    """Requirement checks."""

    def test_missing_for(self):
        inputs = ResolvedInputs()
        assert inputs.missing_for(InputRequirements(needs_text=True, needs_image=True)) == [
            "text", "image",
        ]
        assert inputs.missing_for(InputRequirements()) == []

    def test_satisfied(self):
        inputs = ResolvedInputs(images=["a"], text="t")
        assert inputs.missing_for(InputRequirements(needs_text=True, needs_image=True)) == []
