"""
Single-shot output post-processing per dialect.
"""

import unittest

from llama_hub.core.postprocess import strip_output
from llama_hub.core.templates import TemplateKind


class TestStripOutput(unittest.TestCase):
    CASES = [
        (TemplateKind.BAICHUAN_2, "你好\n用户:再见", "你好"),
        (TemplateKind.OPENCHAT, "Hi<|end_of_turn|>", "Hi"),
        (TemplateKind.OPENCHAT, "Hi <|end_of_turn|><|end_of_turn|>\n", "Hi"),
        (TemplateKind.CHATML, "Hi<|im_end|>\n<|im_start|>user\nmore", "Hi"),
        (TemplateKind.CHATML, "Hi<|im_start|>x<|im_end|>", "Hi"),
        (TemplateKind.ZEPHYR, "Hi</s><", "Hi"),
        (TemplateKind.ZEPHYR, "Hi</s>", "Hi"),
        (TemplateKind.MISTRALLITE, " Hi </s>\n", "Hi"),
        (TemplateKind.DEEPSEEK_CHAT, "Hi<|end_of_sentence|>", "Hi"),
        (TemplateKind.BELLE_LLAMA_2_CHAT, "Hi\nHuman:", "Hi"),
        (TemplateKind.LLAMA_2_CHAT, "  Hi </s> ", "Hi </s>"),
        (None, "  plain text \n", "plain text"),
    ]

    def test_rules(self):
        for kind, raw, expected in self.CASES:
            with self.subTest(kind=kind, raw=raw):
                self.assertEqual(strip_output(raw, kind), expected)

    def test_idempotent(self):
        samples = [raw for _, raw, _ in self.CASES] + ["", "   ", "</s></s>", "<|im_end|>"]
        for kind in list(TemplateKind) + [None]:
            for raw in samples:
                with self.subTest(kind=kind, raw=raw):
                    once = strip_output(raw, kind)
                    self.assertEqual(strip_output(once, kind), once)

    def test_text_without_marker_only_trimmed(self):
        self.assertEqual(strip_output("\n answer \n", TemplateKind.CHATML), "answer")


if __name__ == "__main__":
    unittest.main(verbosity=2)
