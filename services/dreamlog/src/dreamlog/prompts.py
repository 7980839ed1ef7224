"""
Prompts and style strings for the dream generation pipeline.

System prompts drive the chat model for titles, stories and analyses; the
style and scene tables drive the three story illustrations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from .models import StoryLength, StoryTone

TITLE_SYSTEM = (
    "You are a creative title generator. Create a short, engaging title (3-6 words) "
    "for a fairy tale based on the dream description provided. The title should be "
    "magical, whimsical, and capture the essence of the dream. Do not use quotation marks."
)

TITLE_USER_TEMPLATE = 'Create a fairy tale title for this dream: "{dream_text}"'

TONE_INSTRUCTIONS: Dict[StoryTone, str] = {
    StoryTone.WHIMSICAL: (
        "Transform this dream into a whimsical, playful fairy tale with magical creatures, "
        "rainbow colors, and joyful adventures. Make it feel like a classic animated story "
        "full of wonder and delight."
    ),
    StoryTone.MYSTICAL: (
        "Transform this dream into a mystical, magical fairy tale with ancient wisdom, "
        "ethereal beings, and spiritual undertones. Include elements of wonder, mystery, "
        "and enlightenment."
    ),
    StoryTone.ADVENTUROUS: (
        "Transform this dream into an adventurous, bold fairy tale with brave heroes, epic "
        "quests, and thrilling challenges. Make it exciting and action-packed with courage "
        "and triumph."
    ),
    StoryTone.GENTLE: (
        "Transform this dream into a gentle, soothing fairy tale with kind characters, "
        "peaceful settings, and heartwarming moments. Make it comforting, tender, and full "
        "of love."
    ),
    StoryTone.MYSTERIOUS: (
        "Transform this dream into a mysterious, dark fairy tale with shadows, secrets, and "
        "intriguing plot twists. Keep it atmospheric and engaging but not too scary."
    ),
    StoryTone.COMEDY: (
        "Transform this dream into a darkly funny fairy tale with sarcastic humor, dramatic "
        "secrets, and absurd plot twists. Keep it atmospheric and intriguing, more spooky "
        "comedy than actual horror."
    ),
}

LENGTH_GUIDANCE: Dict[StoryLength, str] = {
    StoryLength.SHORT: "150-250 words",
    StoryLength.MEDIUM: "300-500 words",
    StoryLength.LONG: "600-800 words",
}

STORY_MAX_TOKENS: Dict[StoryLength, int] = {
    StoryLength.SHORT: 400,
    StoryLength.MEDIUM: 800,
    StoryLength.LONG: 1200,
}

STORY_SYSTEM_TEMPLATE = """You are a master storyteller who specializes in transforming dreams into captivating fairy tales. {tone_instruction}

Guidelines:
- Create a complete, well-structured fairy tale with a clear beginning, middle, and end
- Length: {length_guidance}
- Include vivid descriptions and engaging dialogue
- Make it appropriate for all ages
- Incorporate classic fairy tale elements (magic, transformation, resolution)
- Use the dream as core inspiration but expand creatively
- Structure the story with clear scene transitions that can be illustrated"""

STORY_USER_TEMPLATE = 'Transform this dream into a fairy tale: "{dream_text}"'

ANALYSIS_SYSTEM = """You are a compassionate dream analyst with expertise in psychology and symbolism. Analyze the provided dream and offer insights into its potential meanings, symbols, and emotional significance.

Guidelines:
- Provide a thoughtful, empathetic analysis (200-300 words)
- Identify key symbols and their possible meanings
- Discuss potential emotional themes or life situations it might reflect
- Offer constructive insights without being prescriptive
- Use accessible language, avoiding excessive jargon
- Be supportive and encouraging
- Remember this is for self-reflection, not clinical diagnosis"""

ANALYSIS_USER_TEMPLATE = 'Please analyze this dream: "{dream_text}"'

TITLE_MAX_TOKENS = 50
TITLE_TEMPERATURE = 0.8
STORY_TEMPERATURE = 0.8
ANALYSIS_MAX_TOKENS = 500
ANALYSIS_TEMPERATURE = 0.7

# Illustration styles keyed by tone; comedy borrows the mysterious palette.
IMAGE_STYLES: Dict[StoryTone, str] = {
    StoryTone.WHIMSICAL: (
        "whimsical fairy tale illustration, bright vibrant colors, classic animation style, "
        "magical and playful, soft lighting"
    ),
    StoryTone.MYSTICAL: (
        "mystical fairy tale artwork, ethereal lighting, fantasy art style, magical realism, "
        "dreamy atmosphere"
    ),
    StoryTone.ADVENTUROUS: (
        "epic fantasy illustration, adventure book art style, dynamic composition, heroic and bold"
    ),
    StoryTone.GENTLE: (
        "soft watercolor fairy tale illustration, pastel colors, gentle and peaceful, "
        "children's book style"
    ),
    StoryTone.MYSTERIOUS: (
        "gothic fairy tale illustration, dramatic shadows, mysterious atmosphere, dark fantasy art"
    ),
    StoryTone.COMEDY: (
        "gothic fairy tale illustration, dramatic shadows, playful spooky atmosphere, "
        "exaggerated expressions"
    ),
}

COMMON_STYLE_SUFFIX = (
    "high quality, detailed artwork, storybook illustration, beautiful composition, "
    "no text, no words, no letters, no writing, text-free illustration"
)

NO_TEXT_INSTRUCTION = (
    "IMPORTANT: Do not include any text, words, letters, or writing in the image."
)


@dataclass(frozen=True)
class SceneTemplate:
    index: int
    name: str
    description: str
    direction: str
    composition: str


SCENE_TEMPLATES: List[SceneTemplate] = [
    SceneTemplate(
        index=1,
        name="Scene 1",
        description="Beginning of the story",
        direction=(
            "Make it feel like the start of a fairy tale: introduce the main character(s) "
            "and setting clearly."
        ),
        composition="wide establishing shot, cinematic lighting, detailed storybook artwork",
    ),
    SceneTemplate(
        index=2,
        name="Scene 2",
        description="Middle of the story",
        direction=(
            "Focus on the main action or conflict: show drama, movement, and emotions."
        ),
        composition=(
            "dynamic mid-shot or angle, detailed character expressions, "
            "high-quality fairy tale illustration"
        ),
    ),
    SceneTemplate(
        index=3,
        name="Scene 3",
        description="End of the story",
        direction=(
            "Show the resolution or magical transformation, satisfying and final."
        ),
        composition=(
            "full resolving scene, warm and complete storybook atmosphere, polished illustration"
        ),
    ),
]

EMOTION_VOCABULARY = [
    "happy", "sad", "anxious", "peaceful", "excited", "fearful", "content", "frustrated",
]

THEME_VOCABULARY = [
    "freedom", "control", "love", "loss", "growth", "conflict", "journey", "transformation",
]


def story_system_prompt(tone: StoryTone, length: StoryLength) -> str:
    return STORY_SYSTEM_TEMPLATE.format(
        tone_instruction=TONE_INSTRUCTIONS[tone],
        length_guidance=LENGTH_GUIDANCE[length],
    )


def image_style(tone: StoryTone) -> str:
    return f"{IMAGE_STYLES.get(tone, IMAGE_STYLES[StoryTone.WHIMSICAL])}, {COMMON_STYLE_SUFFIX}"


def scene_prompt(template: SceneTemplate, segment: str, tone: StoryTone) -> str:
    """Build the image prompt for one scene of a story."""
    return (
        f"Illustrate this scene: {segment} | {template.direction} | "
        f"Style: {image_style(tone)} | Composition: {template.composition}. "
        f"{NO_TEXT_INSTRUCTION}"
    )
