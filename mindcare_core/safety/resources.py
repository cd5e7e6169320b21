"""危机求助资源与不依赖网络的兜底文本。

资源列表是静态配置，随代码发布并带版本号；危机回复的兜底文本只由
这里的常量拼装，任何网络调用失败都不影响它的生成。
"""

from typing import Sequence

from mindcare_core.domain.models import CrisisResource


CRISIS_RESOURCES_VERSION = "2024.10"

CRISIS_PHONE_LINE = "988"
CRISIS_TEXT_LINE = "Text HOME to 741741"

CRISIS_RESOURCES: tuple[CrisisResource, ...] = (
    CrisisResource(
        name="988 Suicide & Crisis Lifeline",
        contact_method=f"Call {CRISIS_PHONE_LINE}",
        availability="24/7",
    ),
    CrisisResource(
        name="Crisis Text Line",
        contact_method=CRISIS_TEXT_LINE,
        availability="24/7",
    ),
    CrisisResource(
        name="Emergency Services",
        contact_method="Call 911",
        availability="24/7",
    ),
)


def format_resources(resources: Sequence[CrisisResource] = CRISIS_RESOURCES) -> str:
    return "\n".join(f"- {r.name}: {r.contact_method} ({r.availability})" for r in resources)


def build_crisis_prompt(user_text: str, resources: Sequence[CrisisResource] = CRISIS_RESOURCES) -> str:
    """危机路径专用 system prompt：强调关切、给出固定资源、鼓励立即行动。"""

    return (
        "CRISIS RESPONSE - Keep under 100 words, be direct and supportive.\n\n"
        f"User expressed: {user_text}\n\n"
        "Respond with:\n"
        '1. "I\'m very concerned about you"\n'
        f"2. Crisis resources, exactly as written:\n{format_resources(resources)}\n"
        '3. "You\'re not alone, help is available"\n'
        "4. Encourage immediate action\n\n"
        "Be compassionate but BRIEF and DIRECT. This is urgent."
    )


def crisis_fallback_message(resources: Sequence[CrisisResource] = CRISIS_RESOURCES) -> str:
    """硬编码的危机兜底回复，非模型生成。"""

    return (
        "I'm very concerned about what you're sharing. Your safety is the most important thing right now. "
        "Please reach out for immediate help:\n\n"
        f"{format_resources(resources)}\n\n"
        "You don't have to go through this alone. There are people who want to help you right now. "
        "Please reach out to one of these resources immediately."
    )
