"""
Prompt builder - renders label and relevance prompts

Templates are plain text with {content}, {urls} (and {query}) placeholders;
substitution is literal so braces inside user content are left alone.
"""
from typing import Dict, List, Optional, Sequence

from telepocket.constants import ALL_CATEGORIES, NoteCategory, LabelKind
from telepocket.models import LabelDefinition, ScoreRequest, ThresholdPolicy
from telepocket.prompts.category_prompts import CATEGORY_PROMPTS, RELEVANCE_PROMPT
from .scoring_strategy import ThresholdResolver


class PromptBuilder:
    """Builds prompt text for score requests"""

    NO_URLS = "none"

    @staticmethod
    def render(template: str, replacements: Dict[str, str]) -> str:
        """
        Replace {name} placeholders literally

        Args:
            template: prompt template
            replacements: placeholder name -> value

        Returns:
            str: rendered prompt
        """
        rendered = template
        for name, value in replacements.items():
            rendered = rendered.replace("{" + name + "}", value)
        return rendered

    @classmethod
    def format_urls(cls, urls: Sequence[str]) -> str:
        return ", ".join(urls) if urls else cls.NO_URLS

    @classmethod
    def build(cls, request: ScoreRequest) -> str:
        """
        Render the candidate label's prompt for one request

        Raises:
            ValueError: the label is a manual tag without a prompt
        """
        template = request.candidate_label.prompt_template
        if not template:
            raise ValueError(f"Label has no prompt: {request.candidate_label.name}")

        return cls.render(template, {
            "content": request.subject_text,
            "urls": cls.format_urls(request.auxiliary_context),
        })

    @classmethod
    def build_relevance(cls, content: str, query: str) -> str:
        return cls.render(RELEVANCE_PROMPT, {"content": content, "query": query})


def build_category_labels(
    resolver: Optional[ThresholdResolver] = None,
    japanese_enabled: bool = True
) -> List[LabelDefinition]:
    """
    Label definitions for the built-in categories

    Args:
        resolver: per-label threshold lookup
        japanese_enabled: include the japanese category

    Returns:
        List[LabelDefinition]: one definition per enabled category
    """
    resolver = resolver or ThresholdResolver()
    labels = []
    for category in ALL_CATEGORIES:
        if category == NoteCategory.JAPANESE.value and not japanese_enabled:
            continue
        labels.append(LabelDefinition(
            name=category,
            prompt_template=CATEGORY_PROMPTS[category],
            thresholds=resolver.resolve(category),
            kind=LabelKind.CATEGORY
        ))
    return labels


def build_tag_label(
    tag_name: str,
    score_prompt: Optional[str],
    auto_confirm_threshold: int,
    suggest_threshold: int,
    tag_id: Optional[str] = None
) -> LabelDefinition:
    """
    Label definition for a user tag

    Raises:
        InvalidThresholdConfig: the tag's thresholds are inconsistent
    """
    return LabelDefinition(
        name=tag_name,
        prompt_template=score_prompt or None,
        thresholds=ThresholdPolicy(auto_confirm_threshold, suggest_threshold, label=tag_name),
        kind=LabelKind.TAG,
        label_id=tag_id
    )
