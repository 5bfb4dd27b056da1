from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TemplateKind(str, Enum):
    """Prompt dialects; values are the names used on the CLI and in config."""

    LLAMA_2_CHAT = "llama-2-chat"
    CODELLAMA_INSTRUCT = "codellama-instruct"
    MISTRAL_INSTRUCT = "mistral-instruct"
    MISTRALLITE = "mistrallite"
    OPENCHAT = "openchat"
    BELLE_LLAMA_2_CHAT = "belle-llama-2-chat"
    VICUNA_CHAT = "vicuna-chat"
    VICUNA_11_CHAT = "vicuna-1.1-chat"
    CHATML = "chatml"
    BAICHUAN_2 = "baichuan-2"
    WIZARD_CODER = "wizard-coder"
    ZEPHYR = "zephyr"
    INTEL_NEURAL = "intel-neural"
    DEEPSEEK_CHAT = "deepseek-chat"
    DEEPSEEK_CODER = "deepseek-coder"

    @classmethod
    def _missing_(cls, value: object) -> Optional["TemplateKind"]:
        if isinstance(value, str):
            name = value.strip().lower()
            if name in _ALIASES:
                return cls(_ALIASES[name])
            for member in cls:
                if member.value == name:
                    return member
        return None

    @classmethod
    def parse(cls, name: str) -> "TemplateKind":
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValueError(f"unknown prompt template {name!r}; expected one of: {valid}") from None

    def __str__(self) -> str:
        return self.value


_ALIASES = {
    "mistral-instruct-v0.1": "mistral-instruct",
}


@dataclass(frozen=True)
class PromptStrategy:
    """Declarative description of one dialect.

    Templates use `{content}` for the stripped turn text; `first_user_template`
    also receives `{system}`, the rendered system turn (empty string when the
    dialect has none). Turns are appended to the history in order, the history
    being stripped first when `trim_history` is set; `priming_cue` ends the
    prompt.
    """

    kind: TemplateKind
    user_template: str
    assistant_template: str
    first_user_template: Optional[str] = None
    system_template: Optional[str] = None
    default_system: Optional[str] = None
    priming_cue: str = ""
    trim_history: bool = True

    # generation end marker this dialect tends to emit as a single token
    stop_marker: Optional[str] = None
    # post-processing: markers removed from the end, markers the output is cut at
    trailing_markers: tuple[str, ...] = ()
    cut_markers: tuple[str, ...] = ()

    @property
    def supports_system(self) -> bool:
        return self.system_template is not None

    def render_system(self, content: Optional[str]) -> str:
        if self.system_template is None:
            return ""
        if content is None:
            if self.default_system is None:
                return ""
            content = self.default_system
        return self.system_template.format(content=content.strip())


_LLAMA2_DEFAULT_SYSTEM = (
    "You are a helpful, respectful and honest assistant. Always answer as helpfully as possible, "
    "while being safe. Your answers should not include any harmful, unethical, racist, sexist, toxic, "
    "dangerous, or illegal content. Please ensure that your responses are socially unbiased and positive "
    "in nature. If a question does not make any sense, or is not factually coherent, explain why instead "
    "of answering something not correct. If you don't know the answer to a question, please don't share "
    "false information."
)

_VICUNA_DEFAULT_SYSTEM = (
    "A chat between a curious user and an artificial intelligence assistant. "
    "The assistant gives helpful, detailed, and polite answers to the user's questions."
)

_DEEPSEEK_CODER_DEFAULT_SYSTEM = (
    "You are an AI programming assistant, utilizing the DeepSeek Coder model, developed by DeepSeek "
    "Company, and you only answer questions related to computer science. For politically sensitive "
    "questions, security and privacy issues, and other non-computer science questions, you will refuse "
    "to answer."
)


STRATEGIES: dict[TemplateKind, PromptStrategy] = {
    s.kind: s
    for s in (
        PromptStrategy(
            kind=TemplateKind.LLAMA_2_CHAT,
            system_template="<s>[INST] <<SYS>>\n{content} <</SYS>>",
            default_system=_LLAMA2_DEFAULT_SYSTEM,
            first_user_template="{system}\n\n{content} [/INST]",
            user_template="<s>[INST] {content} [/INST]",
            assistant_template=" {content} </s>",
            stop_marker="</s>",
        ),
        PromptStrategy(
            kind=TemplateKind.CODELLAMA_INSTRUCT,
            system_template="<<SYS>>\n{content} <</SYS>>",
            default_system=(
                "Write code to solve the following coding problem that obeys the constraints and "
                "passes the example test cases. Please wrap your code answer using ```:"
            ),
            first_user_template="<s>[INST] {system}\n\n{content} [/INST]",
            user_template="<s>[INST] {content} [/INST]",
            assistant_template=" {content} </s>",
            stop_marker="</s>",
        ),
        PromptStrategy(
            kind=TemplateKind.MISTRAL_INSTRUCT,
            first_user_template="<s>[INST] {content} [/INST]",
            user_template="[INST] {content} [/INST]",
            assistant_template="{content}</s>",
            stop_marker="</s>",
        ),
        PromptStrategy(
            kind=TemplateKind.MISTRALLITE,
            user_template="<|prompter|>{content}</s>",
            assistant_template="<|assistant|>{content}</s>",
            priming_cue="<|assistant|>",
            stop_marker="</s>",
            trailing_markers=("</s><", "</s>"),
        ),
        PromptStrategy(
            kind=TemplateKind.OPENCHAT,
            user_template="GPT4 User: {content}<|end_of_turn|>",
            assistant_template="GPT4 Assistant: {content}<|end_of_turn|>",
            priming_cue="GPT4 Assistant:",
            stop_marker="<|end_of_turn|>",
            trailing_markers=("<|end_of_turn|>",),
        ),
        PromptStrategy(
            kind=TemplateKind.BELLE_LLAMA_2_CHAT,
            first_user_template="Human: \n{content}",
            user_template="\nHuman: \n{content}",
            assistant_template="\n\nAssistant:{content}",
            priming_cue="\n\nAssistant:\n",
            stop_marker="Human:",
            trailing_markers=("Human:",),
        ),
        PromptStrategy(
            kind=TemplateKind.VICUNA_CHAT,
            system_template="{content}",
            default_system=_VICUNA_DEFAULT_SYSTEM,
            first_user_template="{system} USER: {content}",
            user_template=" USER: {content}",
            assistant_template=" ASSISTANT: {content}",
            priming_cue=" ASSISTANT:",
        ),
        PromptStrategy(
            kind=TemplateKind.VICUNA_11_CHAT,
            system_template="{content}",
            default_system=_VICUNA_DEFAULT_SYSTEM,
            first_user_template="{system} USER: {content}",
            user_template="USER: {content}",
            assistant_template=" ASSISTANT: {content}</s>",
            priming_cue=" ASSISTANT:",
            stop_marker="</s>",
        ),
        PromptStrategy(
            kind=TemplateKind.CHATML,
            system_template="<|im_start|>system\n{content}<|im_end|>",
            default_system="Answer as concisely as possible.",
            first_user_template="{system}\n<|im_start|>user\n{content}<|im_end|>",
            user_template="\n<|im_start|>user\n{content}<|im_end|>",
            assistant_template="\n<|im_start|>assistant\n{content}<|im_end|>",
            priming_cue="\n<|im_start|>assistant",
            stop_marker="<|im_end|>",
            cut_markers=("<|im_start|>", "<|im_end|>"),
        ),
        PromptStrategy(
            kind=TemplateKind.BAICHUAN_2,
            system_template="{content}",
            default_system="以下内容为人类用户与与一位智能助手的对话。",
            first_user_template="{system}\n\n用户:{content}",
            user_template="\n\n用户:{content}",
            assistant_template="\n助手:{content}",
            priming_cue="\n助手:",
            stop_marker="用户:",
            cut_markers=("用户:",),
        ),
        PromptStrategy(
            kind=TemplateKind.WIZARD_CODER,
            system_template="{content}",
            default_system=(
                "Below is an instruction that describes a task. "
                "Write a response that appropriately completes the request."
            ),
            first_user_template="{system}\n\n### Instruction:\n{content}",
            user_template="\n\n### Instruction:\n{content}",
            assistant_template="\n\n### Response:\n{content}",
            priming_cue="\n\n### Response:",
        ),
        PromptStrategy(
            kind=TemplateKind.ZEPHYR,
            system_template="<|system|>\n{content}</s>",
            default_system="You are a friendly chatbot.",
            first_user_template="{system}\n<|user|>\n{content}</s>",
            user_template="\n<|user|>\n{content}</s>",
            assistant_template="\n<|assistant|>\n{content}</s>",
            priming_cue="\n<|assistant|>",
            stop_marker="</s>",
            trailing_markers=("</s><", "</s>"),
        ),
        PromptStrategy(
            kind=TemplateKind.INTEL_NEURAL,
            system_template="### System:\n{content}",
            default_system=(
                "You are a chatbot developed by Intel. "
                "Please answer all questions to the best of your ability."
            ),
            first_user_template="{system}\n### User:\n{content}",
            user_template="\n### User:\n{content}",
            assistant_template="\n### Assistant:\n{content}",
            priming_cue="\n### Assistant:",
        ),
        PromptStrategy(
            kind=TemplateKind.DEEPSEEK_CHAT,
            user_template="User: {content}\n\n",
            assistant_template="Assistant: {content}<|end_of_sentence|>",
            priming_cue="Assistant:",
            trim_history=False,
            stop_marker="<|end_of_sentence|>",
            trailing_markers=("<|end_of_sentence|>",),
        ),
        PromptStrategy(
            kind=TemplateKind.DEEPSEEK_CODER,
            system_template="{content}",
            default_system=_DEEPSEEK_CODER_DEFAULT_SYSTEM,
            first_user_template="{system}\n### Instruction:\n{content}",
            user_template="\n### Instruction:\n{content}",
            assistant_template="\n### Response:\n{content}\n<|EOT|>",
            priming_cue="\n### Response:",
            stop_marker="<|EOT|>",
        ),
    )
}
