"""
End-to-end core paths: render -> engine (guarded) -> post-process -> usage.
"""

import asyncio
import json
import unittest
from dataclasses import replace

from llama_hub.capabilities.interfaces import ChatMessage
from llama_hub.capabilities.mock_engine import MockEngine
from llama_hub.common.errors import InferenceError
from llama_hub.core.assembler import build_chat_completion, build_completion, build_usage, count_words
from llama_hub.core.guard import EngineGuard
from llama_hub.core.orchestrator import Orchestrator
from llama_hub.core.prompt_builder import RenderedPrompt
from llama_hub.core.registry import TemplateRegistry
from llama_hub.core.templates import STRATEGIES, TemplateKind
from llama_hub.models import GenerationOptions


class TestAssembler(unittest.TestCase):
    def test_word_counts(self):
        usage = build_usage("a b c", "d e")
        self.assertEqual((usage.prompt_tokens, usage.completion_tokens, usage.total_tokens), (3, 2, 5))
        self.assertEqual(count_words("  \n\t "), 0)

    def test_completion_record(self):
        obj = build_completion(model="m", text="d e", usage=build_usage("a b c", "d e")).model_dump()
        self.assertTrue(obj["id"].startswith("cmpl-"))
        self.assertEqual(obj["object"], "text_completion")
        self.assertEqual(obj["model"], "m")
        self.assertIsInstance(obj["created"], int)
        self.assertEqual(obj["choices"][0]["text"], "d e")
        self.assertEqual(obj["choices"][0]["finish_reason"], "stop")
        self.assertEqual(obj["usage"]["total_tokens"], 5)

    def test_chat_completion_record(self):
        a = build_chat_completion(model="m", content="hi", usage=build_usage("q", "hi"))
        b = build_chat_completion(model="m", content="hi", usage=build_usage("q", "hi"))
        self.assertTrue(a.id.startswith("chatcmpl-"))
        self.assertNotEqual(a.id, b.id)
        self.assertEqual(a.object, "chat.completion")
        self.assertEqual(a.choices[0].message.role, "assistant")
        self.assertEqual(a.choices[0].message.content, "hi")


class TestGenerationOptions(unittest.TestCase):
    def test_metadata_uses_engine_keys(self):
        meta = json.loads(GenerationOptions(n_predict=16).to_metadata())
        self.assertEqual(meta["n-predict"], 16)
        self.assertEqual(meta["ctx-size"], 4096)
        self.assertEqual(meta["enable-log"], False)
        self.assertNotIn("reverse-prompt", meta)

        meta = json.loads(GenerationOptions(reverse_prompt="User:").to_metadata())
        self.assertEqual(meta["reverse-prompt"], "User:")


class TestOrchestrator(unittest.IsolatedAsyncioTestCase):
    def make(self, engine):
        return Orchestrator(guard=EngineGuard(engine))

    async def test_non_streaming_post_processes(self):
        engine = MockEngine(["Hello", " there", "<|im_end|>", "\n<|im_start|>user"])
        orch = self.make(engine)
        prompt = orch.render_prompt(TemplateKind.CHATML, [ChatMessage("system", "be terse"), ChatMessage("user", "hi")])

        text, usage = await orch.run_non_streaming(prompt, GenerationOptions())

        self.assertEqual(text, "Hello there")
        self.assertEqual(engine.prompt, prompt.text)
        self.assertEqual(usage.completion_tokens, 2)
        self.assertEqual(usage.prompt_tokens, len(prompt.text.split()))
        self.assertEqual(usage.total_tokens, usage.prompt_tokens + 2)

    async def test_options_reach_engine(self):
        engine = MockEngine(["a", " b", " c"])
        orch = self.make(engine)
        text, _ = await orch.run_non_streaming(RenderedPrompt("x"), GenerationOptions(n_predict=2))
        self.assertEqual(text, "a b")
        self.assertEqual(engine.metadata["n-predict"], 2)

    async def test_non_streaming_failure(self):
        orch = self.make(MockEngine(["a"], fail_compute=True))
        with self.assertRaises(InferenceError):
            await orch.run_non_streaming(RenderedPrompt("x"), GenerationOptions())
        self.assertFalse(orch.guard.busy)

    async def test_streaming_pushes_tokens(self):
        orch = self.make(MockEngine([" ", "Hello", " world"]))
        seen = []

        async def sink(token):
            seen.append(token)

        text, usage = await orch.run_streaming(RenderedPrompt("a b c"), GenerationOptions(), sink)
        self.assertEqual(text, "Hello world")
        self.assertEqual(seen, ["Hello", " world"])
        self.assertEqual((usage.prompt_tokens, usage.completion_tokens, usage.total_tokens), (3, 2, 5))

    async def test_streaming_uses_dialect_stop_marker(self):
        orch = self.make(MockEngine(["Hi", " <|im_end|>", " junk"]))
        prompt = orch.render_prompt(TemplateKind.CHATML, [ChatMessage("user", "hi")])
        text, _ = await orch.run_streaming(prompt, GenerationOptions(), self._discard)
        self.assertEqual(text, "Hi")

    async def test_reverse_prompt_keeps_dialect_marker(self):
        orch = self.make(MockEngine(["Hi", " <|im_end|>", " there", " User:"]))
        prompt = orch.render_prompt(TemplateKind.CHATML, [ChatMessage("user", "hi")])
        self.assertEqual(orch.stop_for(prompt, GenerationOptions(reverse_prompt="User:")), ("User:", "<|im_end|>"))
        text, _ = await orch.run_streaming(prompt, GenerationOptions(reverse_prompt="User:"), self._discard)
        self.assertEqual(text, "Hi")

    async def test_reverse_prompt_stops_stream(self):
        orch = self.make(MockEngine(["Hi", " there", " User:", " more", " <|im_end|>"]))
        prompt = orch.render_prompt(TemplateKind.CHATML, [ChatMessage("user", "hi")])
        text, _ = await orch.run_streaming(prompt, GenerationOptions(reverse_prompt="User:"), self._discard)
        self.assertEqual(text, "Hi there")

    async def test_reverse_prompt_on_single_shot(self):
        engine = MockEngine(["Hi", " there", " User:", " more"])
        orch = self.make(engine)
        text, _ = await orch.run_non_streaming(RenderedPrompt("x"), GenerationOptions(reverse_prompt="User:"))
        self.assertEqual(text, "Hi there")
        self.assertEqual(engine.metadata["reverse-prompt"], "User:")

    def test_stop_for_raw_prompt(self):
        orch = self.make(MockEngine())
        self.assertEqual(orch.stop_for(RenderedPrompt("x"), GenerationOptions()), ())
        self.assertEqual(orch.stop_for(RenderedPrompt("x"), GenerationOptions(reverse_prompt="###")), ("###",))

    async def test_post_processing_follows_registry(self):
        table = dict(STRATEGIES)
        table[TemplateKind.CHATML] = replace(STRATEGIES[TemplateKind.CHATML], cut_markers=("<END>",))
        engine = MockEngine(["Hello", " there", "<END>", " junk", "<|im_end|>"])
        orch = Orchestrator(guard=EngineGuard(engine), registry=TemplateRegistry(table))
        prompt = orch.render_prompt(TemplateKind.CHATML, [ChatMessage("user", "hi")])

        text, _ = await orch.run_non_streaming(prompt, GenerationOptions())
        self.assertEqual(text, "Hello there")

    async def test_streaming_failure_keeps_emitted_tokens(self):
        orch = self.make(MockEngine(["a", " b", " c", " d"], fail_at=3))
        seen = []

        async def sink(token):
            seen.append(token)

        with self.assertRaises(InferenceError):
            await orch.run_streaming(RenderedPrompt("x"), GenerationOptions(), sink)
        self.assertEqual(seen, ["a", " b"])
        self.assertFalse(orch.guard.busy)

    async def test_generation_is_serialized(self):
        engine = MockEngine(["a", " b", " c"], delay_s=0.005)
        orch = self.make(engine)
        results = await asyncio.gather(
            orch.run_streaming(RenderedPrompt("one"), GenerationOptions(), self._discard),
            orch.run_streaming(RenderedPrompt("two"), GenerationOptions(), self._discard),
            orch.run_non_streaming(RenderedPrompt("three"), GenerationOptions()),
        )
        self.assertEqual([text for text, _ in results], ["a b c", "a b c", "a b c"])
        self.assertEqual(engine.max_active, 1)

    @staticmethod
    async def _discard(_):
        return None


if __name__ == "__main__":
    unittest.main(verbosity=2)
