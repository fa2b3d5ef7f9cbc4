"""
Generation request handling.

Every operation follows the same order, and a failing step ends the request
before anything after it runs:

    validate -> rate limit -> moderate -> log pending -> call Gemini
             -> increment usage -> log terminal status -> respond

Validation and rate-limit rejections are not logged. Moderation blocks are
logged as 'blocked' attempts. Once a pending attempt exists it is always
resolved to success or failed by AttemptTracker.

Prompt enhancement and refinement degrade instead of failing: if the text
model is unavailable after moderation passed, a fixed style suffix is
appended to the prompt and the response says ``fallback=True``.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from app.exceptions import (
    DatabaseError,
    ErrorCode,
    PolicyBlockedError,
    QuotaExceededError,
    UpstreamFailureError,
    UpstreamQuotaError,
    UpstreamTimeoutError,
    ValidationError,
)
from app.utils.sanitization import normalize_prompt, sanitize_for_log
from src.generation.gemini import (
    GeminiClient,
    GeminiError,
    GeminiQuotaError,
    GeminiTimeoutError,
    extract_image,
    extract_text,
    image_part,
    text_part,
)
from src.generation.log import AttemptTracker, GenerationLog
from src.generation.prompts import (
    default_refine_questions,
    enhancement_prompt,
    fallback_enhancement,
    refine_apply_prompt,
    refine_auto_prompt,
    refine_questions_prompt,
    strip_code_fences,
)
from src.moderation.ai import AI_FLAGGED_FLAG, ai_moderate
from src.moderation.engine import ContentModerator, classify, validate_image_upload
from src.types.generation import (
    SINGLE_IMAGE_MODELS,
    EnhanceRequest,
    EnhancementResult,
    EnhancementStyle,
    GenerationStatus,
    ImageGenerationRequest,
    ImageGenerationResult,
    InputImage,
    Principal,
    RefineMode,
    RefineQuestion,
    RefineRequest,
    RefineResult,
    resolve_image_model,
)
from src.types.moderation import ModerationResult
from src.types.usage import RateLimitResult, TierLimits, UsageAction, limits_for
from src.usage.rate_limiter import RateLimiter
from src.usage.store import UsageStore
from src.utils.logging import Timer

logger = logging.getLogger(__name__)

IMAGE_TEMPERATURE = 0.8
ENHANCE_TEMPERATURE = 0.7
QUESTIONS_TEMPERATURE = 0.3


class GenerationService:
    """
    Orchestrates image generation, prompt enhancement and refinement.

    Args:
        rate_limiter: Tier quota and cooldown checks.
        usage_store: Counters incremented after a successful call.
        generation_log: Audit trail of attempts.
        moderator: Keyword/pattern moderation bound to the log.
        gemini: Gemini REST client.
        text_model: Model used for enhancement, refinement and AI moderation.
        ai_moderation_enabled: Run the secondary AI check on image prompts.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        usage_store: UsageStore,
        generation_log: GenerationLog,
        moderator: ContentModerator,
        gemini: GeminiClient,
        text_model: str = "gemini-2.5-flash",
        ai_moderation_enabled: bool = True,
    ):
        self.rate_limiter = rate_limiter
        self.usage_store = usage_store
        self.generation_log = generation_log
        self.moderator = moderator
        self.gemini = gemini
        self.text_model = text_model
        self.ai_moderation_enabled = ai_moderation_enabled

    # =========================================================================
    # Shared steps
    # =========================================================================

    @staticmethod
    def _validate_prompt(prompt: str, limits: TierLimits) -> str:
        prompt = normalize_prompt(prompt)
        if not prompt:
            raise ValidationError(
                "Prompt is required",
                field="prompt",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
            )
        if len(prompt) > limits.max_prompt_length:
            raise ValidationError(
                f"Prompt too long. Maximum {limits.max_prompt_length} characters "
                f"for {limits.tier.value} tier.",
                field="prompt",
                error_code=ErrorCode.PROMPT_TOO_LONG,
                details={"max_length": limits.max_prompt_length, "length": len(prompt)},
            )
        return prompt

    @staticmethod
    def _validate_images(images: List[InputImage]) -> None:
        for index, image in enumerate(images):
            result = validate_image_upload(image.data, image.mime_type)
            if result.is_blocked:
                raise ValidationError(
                    result.message,
                    field=f"images[{index}]",
                    error_code=ErrorCode.INVALID_IMAGE,
                    details={"flags": result.flags},
                )

    async def _check_rate(self, principal: Principal, action: UsageAction) -> RateLimitResult:
        result = await self.rate_limiter.check_limit(principal.id, action, principal.tier)
        if not result.allowed:
            logger.info(f"Rate limit denied {action.value} for user {principal.id[:8]}...: {result.message}")
            raise QuotaExceededError(
                result.message,
                quota_type=action.value,
                remaining_quota=result.remaining_quota,
                reset_time=result.reset_time,
            )
        return result

    async def _block(
        self,
        principal: Principal,
        prompt: str,
        model: str,
        result: ModerationResult,
        message: Optional[str] = None,
    ) -> PolicyBlockedError:
        await self.generation_log.log_attempt(
            principal.id,
            prompt,
            model,
            GenerationStatus.BLOCKED,
            {"moderation": result.model_dump(mode="json")},
        )
        return PolicyBlockedError(
            message or result.message,
            flags=result.flags,
            severity=result.severity.value,
        )

    async def _moderate(self, principal: Principal, prompt: str, model: str, limits: TierLimits) -> List[str]:
        """Run keyword moderation, raising PolicyBlockedError on a block."""
        if limits.bypass_moderation:
            return []
        result = await self.moderator.moderate(prompt, principal.id, "prompt")
        if result.is_blocked:
            raise await self._block(principal, prompt, model, result)
        return result.flags

    async def _remaining(self, principal: Principal, action: UsageAction, fallback: Optional[int]) -> int:
        try:
            return await self.rate_limiter.remaining(principal.id, action, principal.tier)
        except Exception as e:
            logger.warning(f"Could not re-read usage for user {principal.id[:8]}...: {e}")
            return max(fallback or 0, 0)

    async def _increment(self, principal: Principal, action: UsageAction) -> None:
        try:
            await self.usage_store.increment_usage(principal.id, action)
        except Exception as e:
            raise DatabaseError(internal_message=f"Usage increment failed: {e}") from e

    async def _complete_text(self, parts: List[Dict[str, Any]], temperature: float) -> str:
        response = await self.gemini.generate_content(
            self.text_model,
            parts,
            {"temperature": temperature, "candidateCount": 1},
        )
        text = extract_text(response)
        if not text:
            raise GeminiError("Gemini returned no text")
        return text

    # =========================================================================
    # Image generation
    # =========================================================================

    async def generate_image(
        self, principal: Principal, request: ImageGenerationRequest
    ) -> ImageGenerationResult:
        """
        Generate an image from a prompt and optional input images.

        Raises:
            ValidationError: Empty or over-long prompt, invalid image.
            QuotaExceededError: Tier cap or cooldown.
            PolicyBlockedError: Moderation blocked the prompt.
            UpstreamQuotaError: Gemini answered 429.
            UpstreamTimeoutError: Gemini timed out.
            UpstreamFailureError: Gemini failed or returned no image.
            DatabaseError: The usage counter could not be updated.
        """
        limits = limits_for(principal.tier)
        prompt = self._validate_prompt(request.prompt, limits)
        self._validate_images(request.images)
        model = resolve_image_model(request.model)

        rate = await self._check_rate(principal, UsageAction.IMAGE)

        flags = await self._moderate(principal, prompt, model, limits)
        if not limits.bypass_moderation and self.ai_moderation_enabled:
            ai_result = await ai_moderate(prompt, self.gemini, self.text_model)
            if ai_result.is_blocked and AI_FLAGGED_FLAG in ai_result.flags:
                raise await self._block(
                    principal, prompt, model, ai_result, "Content blocked by AI moderation"
                )
            if ai_result.is_blocked:
                # The keyword pass already succeeded; an unavailable AI check does not stop the request.
                logger.warning(f"AI moderation unavailable, continuing for user {principal.id[:8]}...")

        images = request.images[:1] if model in SINGLE_IMAGE_MODELS else request.images
        parts = [text_part(prompt)] + [image_part(image) for image in images]
        generation_config: Dict[str, Any] = {
            "temperature": IMAGE_TEMPERATURE,
            "candidateCount": 1,
            "responseModalities": ["TEXT", "IMAGE"],
        }
        if request.seed is not None:
            generation_config["seed"] = request.seed

        logger.info(
            f"Generating image for user {principal.id[:8]}... with {model}: "
            f"'{sanitize_for_log(prompt)}' ({len(images)} input images)"
        )

        async with AttemptTracker(self.generation_log, principal.id, prompt, model) as attempt:
            try:
                with Timer("gemini_generate_image", logger):
                    response = await self.gemini.generate_content(model, parts, generation_config)
            except GeminiQuotaError as e:
                attempt.fail(error="quota_exceeded", retryDelay=e.retry_delay)
                raise UpstreamQuotaError(e.retry_delay, internal_message=e.message) from e
            except GeminiTimeoutError as e:
                attempt.fail(error="timeout")
                raise UpstreamTimeoutError(internal_message=e.message) from e
            except GeminiError as e:
                attempt.fail(error="api_error", status=e.status_code)
                raise UpstreamFailureError(internal_message=e.message) from e

            image = extract_image(response)
            if image is None:
                attempt.fail(error="no_image_generated")
                raise UpstreamFailureError(
                    "No image was generated. Try rephrasing your prompt.",
                    error_code=ErrorCode.NO_IMAGE_GENERATED,
                )

            await self._increment(principal, UsageAction.IMAGE)
            attempt.succeed(moderation={"flags": flags})

        logger.info(f"Image generated for user {principal.id[:8]}... with {model}")

        try:
            usage = await self.rate_limiter.usage_snapshot(principal.id, principal.tier)
            remaining = usage.images_remaining
        except Exception as e:
            logger.warning(f"Could not re-read usage for user {principal.id[:8]}...: {e}")
            usage = None
            remaining = max(rate.remaining_quota or 0, 0)

        return ImageGenerationResult(image=image, model=model, remaining_quota=remaining, usage=usage)

    # =========================================================================
    # Prompt enhancement
    # =========================================================================

    async def enhance_prompt(self, principal: Principal, request: EnhanceRequest) -> EnhancementResult:
        """
        Rewrite a prompt in the requested style.

        Falls back to appending a fixed style suffix when the text model fails
        or its output would not pass moderation. Usage is counted either way.
        """
        limits = limits_for(principal.tier)
        prompt = self._validate_prompt(request.prompt, limits)
        if request.reference_image is not None:
            self._validate_images([request.reference_image])
        style = EnhancementStyle.parse(request.style)

        rate = await self._check_rate(principal, UsageAction.ENHANCEMENT)
        await self._moderate(principal, prompt, self.text_model, limits)

        parts = [text_part(enhancement_prompt(prompt, style))]
        if request.reference_image is not None:
            parts.append(image_part(request.reference_image))

        fallback = False
        message = None
        try:
            enhanced = await self._complete_text(parts, ENHANCE_TEMPERATURE)
        except GeminiError as e:
            logger.warning(f"Enhancement unavailable, using fallback: {e.message}")
            enhanced = fallback_enhancement(prompt, style)
            fallback = True
            message = "AI enhancement unavailable, applied basic enhancement"
        else:
            if not limits.bypass_moderation and classify(enhanced).is_blocked:
                logger.warning(f"Enhanced prompt for user {principal.id[:8]}... failed moderation, using fallback")
                enhanced = fallback_enhancement(prompt, style)
                fallback = True
                message = "Enhanced prompt did not pass moderation, applied basic enhancement"

        await self._increment(principal, UsageAction.ENHANCEMENT)

        return EnhancementResult(
            enhanced_prompt=enhanced,
            original_prompt=prompt,
            style=style,
            fallback=fallback,
            message=message,
            remaining_quota=await self._remaining(principal, UsageAction.ENHANCEMENT, rate.remaining_quota),
        )

    # =========================================================================
    # Prompt refinement
    # =========================================================================

    async def refine_prompt(self, principal: Principal, request: RefineRequest) -> RefineResult:
        """
        Refine a prompt automatically, ask clarifying questions, or apply answers.

        'questions' consumes no quota; 'auto' and 'apply' count as one
        enhancement.
        """
        try:
            mode = RefineMode(request.mode)
        except ValueError:
            raise ValidationError("Invalid refine mode", field="mode", value=request.mode) from None

        limits = limits_for(principal.tier)
        prompt = self._validate_prompt(request.prompt, limits)
        self._validate_images(request.reference_images)

        if mode == RefineMode.QUESTIONS:
            await self._moderate(principal, prompt, self.text_model, limits)
            return RefineResult(questions=await self._clarifying_questions(prompt, request.reference_images))

        rate = await self._check_rate(principal, UsageAction.ENHANCEMENT)
        await self._moderate(principal, prompt, self.text_model, limits)

        if mode == RefineMode.AUTO:
            instruction = refine_auto_prompt(prompt)
        else:
            instruction = refine_apply_prompt(prompt, request.answers)
        parts = [text_part(instruction)] + [image_part(image) for image in request.reference_images]

        fallback = False
        try:
            refined = await self._complete_text(parts, ENHANCE_TEMPERATURE)
        except GeminiError as e:
            logger.warning(f"Refinement unavailable, using fallback: {e.message}")
            refined = fallback_enhancement(prompt, EnhancementStyle.DETAILED)
            fallback = True
        else:
            if not limits.bypass_moderation and classify(refined).is_blocked:
                refined = fallback_enhancement(prompt, EnhancementStyle.DETAILED)
                fallback = True

        await self._increment(principal, UsageAction.ENHANCEMENT)

        return RefineResult(
            refined_prompt=refined,
            fallback=fallback,
            remaining_quota=await self._remaining(principal, UsageAction.ENHANCEMENT, rate.remaining_quota),
        )

    async def _clarifying_questions(self, prompt: str, images: List[InputImage]) -> List[RefineQuestion]:
        parts = [text_part(refine_questions_prompt(prompt))] + [image_part(image) for image in images]
        try:
            text = await self._complete_text(parts, QUESTIONS_TEMPERATURE)
            raw = json.loads(strip_code_fences(text))
            questions = [
                RefineQuestion(question=str(item["question"]), options=[str(o) for o in item.get("options", [])])
                for item in raw
            ]
        except (GeminiError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Could not get clarifying questions, using defaults: {e}")
            return default_refine_questions()
        return questions or default_refine_questions()
