"""
Prompt templates sent to the Gemini text model.
"""

from typing import Dict, List

from src.types.generation import EnhancementStyle, RefineAnswer, RefineQuestion

ENHANCEMENT_INSTRUCTIONS: Dict[EnhancementStyle, str] = {
    EnhancementStyle.DETAILED: (
        "Enhance this image prompt with specific visual details. Keep it under 200 words. "
        "Add key details about lighting, colors, and composition while preserving the main concept."
    ),
    EnhancementStyle.ARTISTIC: (
        "Transform this into an artistic image prompt. Keep it under 200 words. "
        "Add art style, color palette, and mood. Focus on the most important artistic elements."
    ),
    EnhancementStyle.PHOTOREALISTIC: (
        "Enhance this for photorealistic generation. Keep it under 200 words. "
        "Add key camera and lighting details, materials, and professional photography terms."
    ),
    EnhancementStyle.CINEMATIC: (
        "Make this cinematic. Keep it under 200 words. "
        "Add essential film lighting, camera angles, and dramatic composition details."
    ),
}

# Appended to the original prompt when the model cannot be used.
FALLBACK_SUFFIXES: Dict[EnhancementStyle, str] = {
    EnhancementStyle.DETAILED: ", highly detailed, sharp focus, vibrant colors, perfect lighting, professional quality",
    EnhancementStyle.ARTISTIC: ", digital art, beautiful composition, dramatic lighting, masterpiece, artistic style",
    EnhancementStyle.PHOTOREALISTIC: ", photorealistic, professional photography, perfect lighting, ultra-realistic, high resolution",
    EnhancementStyle.CINEMATIC: ", cinematic lighting, dramatic composition, movie scene, professional cinematography",
}

AI_MODERATION_TEMPLATE = """You are a content moderation AI. Analyze this image generation prompt for inappropriate content.

Respond with ONLY a JSON object in this exact format:
{{
  "safe": true/false,
  "reason": "brief explanation",
  "severity": "low/medium/high"
}}

Consider UNSAFE:
- NSFW/adult/sexual content
- Violence, weapons, gore
- Hate speech, discrimination
- Illegal activities
- Self-harm content
- Inappropriate content involving minors
- Graphic or disturbing imagery

Prompt to analyze: "{content}"
"""

REFINE_AUTO_TEMPLATE = (
    "You are a prompt optimizer for an AI image generator. The user wrote a basic prompt. "
    "Improve it by adding specific visual details about composition, lighting, colors, and style "
    "while preserving the user's core intent. Keep it under 150 words. Do NOT change what the "
    "user wants, only add quality-improving details. Output ONLY the improved prompt, nothing else."
    '\n\nUser prompt: "{prompt}"'
)

REFINE_QUESTIONS_TEMPLATE = (
    "You are helping a user create a better image generation prompt. Given their prompt, generate "
    "exactly 3 short clarifying questions to understand what they want. Each question should have "
    "3-5 concise preset answer options. Return ONLY a valid JSON array, no markdown, no explanation:\n"
    '[{{"question": "...", "options": ["...", "...", "..."]}}]'
    '\n\nUser prompt: "{prompt}"'
)

REFINE_APPLY_TEMPLATE = (
    "Rewrite this image generation prompt incorporating the user's preferences below. Keep the core "
    "subject but enhance with the specified preferences. Output ONLY the rewritten prompt, nothing "
    "else. Keep under 200 words."
    '\n\nOriginal prompt: "{prompt}"\nUser preferences:\n{answers}'
)


def default_refine_questions() -> List[RefineQuestion]:
    """Questions offered when the model's answer cannot be parsed."""
    return [
        RefineQuestion(
            question="What style do you prefer?",
            options=["Photorealistic", "Digital Art", "Anime", "Painterly", "Minimalist"],
        ),
        RefineQuestion(
            question="What mood should the image have?",
            options=["Calm", "Dramatic", "Mysterious", "Joyful", "Epic"],
        ),
        RefineQuestion(
            question="Any specific composition details?",
            options=["Close-up", "Wide shot", "Bird's eye", "Low angle", "Centered"],
        ),
    ]


def enhancement_prompt(prompt: str, style: EnhancementStyle) -> str:
    instruction = ENHANCEMENT_INSTRUCTIONS[style]
    return f'{instruction}\n\nOriginal prompt: "{prompt}"\n\nEnhanced prompt:'


def fallback_enhancement(prompt: str, style: EnhancementStyle) -> str:
    return prompt + FALLBACK_SUFFIXES[style]


def ai_moderation_prompt(content: str) -> str:
    return AI_MODERATION_TEMPLATE.format(content=content)


def refine_auto_prompt(prompt: str) -> str:
    return REFINE_AUTO_TEMPLATE.format(prompt=prompt)


def refine_questions_prompt(prompt: str) -> str:
    return REFINE_QUESTIONS_TEMPLATE.format(prompt=prompt)


def refine_apply_prompt(prompt: str, answers: List[RefineAnswer]) -> str:
    answers_text = "\n".join(f"- {a.question}: {a.answer}" for a in answers)
    return REFINE_APPLY_TEMPLATE.format(prompt=prompt, answers=answers_text)


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` markdown fences around a model answer."""
    cleaned = text.strip()
    for fence in ("```json", "```JSON", "```"):
        cleaned = cleaned.replace(fence, "")
    return cleaned.strip()
