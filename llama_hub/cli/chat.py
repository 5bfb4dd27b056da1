"""Interactive chat against a single engine.

Each user line is appended to the conversation, the whole conversation is
re-rendered with the chosen template, and the answer is appended back as an
assistant turn.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Callable, List, Optional, Sequence

from ..capabilities.interfaces import ChatMessage, InferenceEngine
from ..capabilities.mock_engine import MockEngine
from ..common.errors import InferenceError, PromptBuildError
from ..core.guard import EngineGuard
from ..core.orchestrator import Orchestrator
from ..core.templates import TemplateKind
from ..models import GenerationOptions
from ..modules.engine_remote import RemoteCompletionsEngine, RemoteEngineConfig

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "[Default system message for the prompt template]"


class Conversation:
    """Append-only message log."""

    def __init__(self, system_prompt: str = "") -> None:
        self._messages: List[ChatMessage] = []
        if system_prompt:
            self.append("system", system_prompt)

    def append(self, role: str, content: str) -> None:
        self._messages.append(ChatMessage(role=role, content=content))  # type: ignore[arg-type]

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llama-hub-chat",
        description="Chat with a model from the terminal.",
        epilog="Example: llama-hub-chat -p chatml --engine-url http://127.0.0.1:8081 --stream-stdout",
    )
    parser.add_argument("-a", "--model-alias", default="default", help="Model alias")
    parser.add_argument("-c", "--ctx-size", type=int, default=4096, help="Size of the prompt context")
    parser.add_argument("-n", "--n-predict", type=int, default=1024, help="Number of tokens to predict")
    parser.add_argument("-g", "--n-gpu-layers", type=int, default=100, help="Number of layers to run on the GPU")
    parser.add_argument("-b", "--batch-size", type=int, default=4096, help="Batch size for prompt processing")
    parser.add_argument("--temp", type=float, default=0.8, help="Temperature for sampling")
    parser.add_argument("--repeat-penalty", type=float, default=1.1, help="Penalize repeat sequence of tokens")
    parser.add_argument("-r", "--reverse-prompt", default=None, help="Halt generation at PROMPT, return control.")
    parser.add_argument("-s", "--system-prompt", default=DEFAULT_SYSTEM_PROMPT, help="System prompt message string")
    parser.add_argument(
        "-p",
        "--prompt-template",
        type=TemplateKind.parse,
        default=TemplateKind.LLAMA_2_CHAT,
        choices=list(TemplateKind),
        metavar="TEMPLATE",
        help="Prompt template: " + ", ".join(k.value for k in TemplateKind),
    )
    parser.add_argument("--log-prompts", action="store_true", help="Print prompt strings")
    parser.add_argument("--log-stat", action="store_true", help="Print statistics")
    parser.add_argument("--log-all", action="store_true", help="Print all log information")
    parser.add_argument("--stream-stdout", action="store_true", help="Print the output in the streaming way")
    parser.add_argument("--engine-url", default=None, help="OpenAI-compatible completions backend (default: echo engine)")
    return parser


def options_from_args(args: argparse.Namespace) -> GenerationOptions:
    return GenerationOptions(
        ctx_size=args.ctx_size,
        n_predict=args.n_predict,
        n_gpu_layers=args.n_gpu_layers,
        batch_size=args.batch_size,
        temp=args.temp,
        repeat_penalty=args.repeat_penalty,
        reverse_prompt=args.reverse_prompt,
        stream_stdout=args.stream_stdout,
        log_enable=args.log_stat or args.log_all,
    )


def read_input(reader: Callable[[str], str] = input) -> str:
    """Block until a non-empty line is entered."""
    while True:
        line = reader("\n[You]: \n")
        if line.strip():
            return line


async def chat_loop(
    orch: Orchestrator,
    template: TemplateKind,
    options: GenerationOptions,
    conversation: Conversation,
    *,
    reader: Callable[[str], str] = input,
    out=sys.stdout,
) -> int:
    async def sink(token: str) -> None:
        out.write(token)
        out.flush()

    async def discard(_: str) -> None:
        return None

    while True:
        try:
            user_message = read_input(reader)
        except EOFError:
            return 0
        conversation.append("user", user_message)

        try:
            prompt = orch.render_prompt(template, conversation.messages)
        except PromptBuildError as e:
            print(f"Fail to build chat prompts: {e}", file=sys.stderr)
            return 1

        out.write("\n[Bot]:\n")
        try:
            answer, usage = await orch.run_streaming(prompt, options, sink if options.stream_stdout else discard)
        except InferenceError as e:
            print(f"\nError: {e}", file=sys.stderr)
            continue

        if not options.stream_stdout:
            out.write(answer.strip())
        out.write("\n")
        out.flush()
        if options.log_enable:
            logger.info("prompt words: %d, answer words: %d", usage.prompt_tokens, usage.completion_tokens)

        conversation.append("assistant", answer)


def build_engine(engine_url: Optional[str], model: str) -> InferenceEngine:
    if engine_url:
        return RemoteCompletionsEngine(RemoteEngineConfig(base_url=engine_url, api_key=None, model=model))
    return MockEngine()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    verbose = args.log_stat or args.log_all or args.log_prompts
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING, format="[%(levelname)s] %(message)s")

    options = options_from_args(args)
    system_prompt = "" if args.system_prompt == DEFAULT_SYSTEM_PROMPT else args.system_prompt
    logger.info("Model alias: %s", args.model_alias)
    logger.info("Prompt template: %s", args.prompt_template.value)
    logger.info("Options: %s", options.to_metadata().decode("utf-8"))
    logger.info("System prompt: %s", system_prompt or "(template default)")

    guard = EngineGuard(build_engine(args.engine_url, args.model_alias))
    orch = Orchestrator(guard=guard, log_prompts=args.log_prompts or args.log_all)

    async def run() -> int:
        try:
            return await chat_loop(orch, args.prompt_template, options, Conversation(system_prompt))
        finally:
            await guard.close()

    print("----------------------------------------------------")
    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
