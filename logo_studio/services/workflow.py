"""
Logo generation workflow.

Each public coordinator call is one workflow: it is registered in a
``WorkflowRegistry`` under a fresh id, walks the states

    GENERATING_PROMPTS -> CREATING_LOGOS -> PROCESSING_RESULTS -> COMPLETED

(or drops to ERROR from any of them), and reports every step to an optional
progress callback. Provider calls inside one workflow are issued one after the
other so the reported percentage only ever grows.
"""

import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from ..schemas import (
    EditCommand,
    GeneratedLogo,
    GeneratedPrompt,
    GenerationProgress,
    GenerationRequest,
    GenerationResult,
    GenerationStatus,
    GenerationType,
    LogoMetadata,
    utc_now,
)
from .image_gateway import ImageErr, ImageGateway, ImageOk, ImageResult
from .image_resolver import HttpImageResolver, ImageResolutionError
from .prompt_compiler import (
    QUALITY_PRESETS,
    PromptCompiler,
    build_context_edit_prompt,
    metadata_for_logo,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[GenerationProgress], None]

STATE_ORDER = [
    GenerationStatus.GENERATING_PROMPTS,
    GenerationStatus.CREATING_LOGOS,
    GenerationStatus.PROCESSING_RESULTS,
    GenerationStatus.COMPLETED,
]
TERMINAL_STATES = (GenerationStatus.COMPLETED, GenerationStatus.ERROR)

# Fixed transformations applied by ``generate_variations``, in order.
VARIATION_TEMPLATES = [
    (
        "Layout Variation",
        'RESTRUCTURE this logo layout completely. Move the text "{company_name}" from its current position '
        "to the OPPOSITE side (if it's on left, move to right; if on top, move to bottom; if centered, move "
        "to corner). Rotate or flip the entire design orientation. Change the text from horizontal to "
        "vertical or vice versa. Make the layout transformation OBVIOUS and DRAMATIC. Keep exact same colors, "
        "fonts, and design elements - ONLY change spatial positioning and orientation. The layout must look "
        "noticeably different.",
    ),
    (
        "Inverted Colors",
        "Create an inverted color version of this logo by reversing all colors - make light colors dark and "
        "dark colors light. If there's white background make it black, if there's black text make it white, "
        'etc. Keep the company name "{company_name}" and exact same layout and design elements, only invert '
        "the color scheme completely.",
    ),
    (
        "Christmas Edition",
        'Add festive Christmas decorations to this logo while keeping the company name "{company_name}" and '
        "core design intact. Add Christmas elements like: Santa hat on any characters/icons, holly leaves, "
        "Christmas tree decorations, snowflakes, or red and green festive accents. Make it clearly "
        "Christmas-themed but maintain the logo's professional appearance.",
    ),
]


def new_workflow_id() -> str:
    return f"workflow_{uuid.uuid4().hex}"


def new_logo_id() -> str:
    return f"logo_{uuid.uuid4().hex[:16]}"


def order_results(logos: List[GeneratedLogo]) -> List[GeneratedLogo]:
    """Completed logos first, then by processing time."""
    return sorted(logos, key=lambda logo: (logo.status != "completed", logo.metadata.processing_time))


class WorkflowRegistry:
    """In-flight progress snapshots and their callbacks, keyed by workflow id."""

    def __init__(self):
        self._progress: Dict[str, GenerationProgress] = {}
        self._callbacks: Dict[str, ProgressCallback] = {}

    def track(self, progress: GenerationProgress, callback: Optional[ProgressCallback] = None) -> None:
        self._progress[progress.workflow_id] = progress
        if callback is not None:
            self._callbacks[progress.workflow_id] = callback

    def publish(self, progress: GenerationProgress) -> bool:
        """Store ``progress`` and notify; returns False once the workflow is no longer tracked."""
        workflow_id = progress.workflow_id
        if workflow_id not in self._progress:
            return False
        self._progress[workflow_id] = progress
        callback = self._callbacks.get(workflow_id)
        if callback is not None:
            try:
                callback(progress)
            except Exception:
                logger.exception(f"Progress callback for {workflow_id} raised")
        return True

    def get(self, workflow_id: str) -> Optional[GenerationProgress]:
        return self._progress.get(workflow_id)

    def cancel(self, workflow_id: str) -> bool:
        progress = self._progress.get(workflow_id)
        if progress is None or progress.status in TERMINAL_STATES:
            return False
        self.release(workflow_id)
        return True

    def release(self, workflow_id: str) -> None:
        self._progress.pop(workflow_id, None)
        self._callbacks.pop(workflow_id, None)

    def __len__(self) -> int:
        return len(self._progress)

    def __contains__(self, workflow_id: str) -> bool:
        return workflow_id in self._progress


class WorkflowRun:
    """Progress bookkeeping for one workflow."""

    def __init__(
        self,
        registry: WorkflowRegistry,
        total_steps: int,
        current_step: str,
        message: str,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.registry = registry
        self.started = time.perf_counter()
        self.progress = GenerationProgress(
            workflow_id=new_workflow_id(),
            status=GenerationStatus.GENERATING_PROMPTS,
            current_step=current_step,
            total_steps=total_steps,
            message=message,
        )
        registry.track(self.progress, on_progress)
        registry.publish(self.progress)

    @property
    def workflow_id(self) -> str:
        return self.progress.workflow_id

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started

    def update(self, **changes) -> None:
        if "percentage" in changes:
            changes["percentage"] = min(100.0, max(self.progress.percentage, float(changes["percentage"])))
        self.progress = self.progress.model_copy(update=changes)
        self.registry.publish(self.progress)

    def advance(self, status: GenerationStatus, **changes) -> None:
        current = STATE_ORDER.index(self.progress.status)
        if STATE_ORDER.index(status) != current + 1:
            raise RuntimeError(f"Illegal workflow transition {self.progress.status.value} -> {status.value}")
        self.update(status=status, **changes)

    def complete(self, logos: List[GeneratedLogo], message: str) -> GenerationResult:
        self.advance(
            GenerationStatus.COMPLETED,
            current_step="Completed",
            completed_steps=self.progress.total_steps,
            percentage=100,
            message=message,
            generated_logos=logos,
        )
        self.registry.release(self.workflow_id)

        completed = sum(1 for logo in logos if logo.status == "completed")
        failed = sum(1 for logo in logos if logo.status == "failed")
        logger.info(f"Workflow {self.workflow_id} completed: {completed} ok, {failed} failed")
        return GenerationResult(
            success=True,
            logos=logos,
            total_generated=completed,
            failed_count=failed,
            total_processing_time=self.elapsed,
        )

    def fail(self, error: str, message: str, logos: Optional[List[GeneratedLogo]] = None) -> GenerationResult:
        logger.error(f"Workflow {self.workflow_id} failed: {error}")
        logos = logos or []
        # Percentage stays at its last reported value.
        self.update(
            status=GenerationStatus.ERROR,
            current_step="Error",
            message=message,
            generated_logos=logos,
            error=error,
        )
        self.registry.release(self.workflow_id)
        return GenerationResult(
            success=False,
            logos=logos,
            total_generated=0,
            failed_count=max(1, sum(1 for logo in logos if logo.status == "failed")),
            total_processing_time=self.elapsed,
            error=error,
        )


class WorkflowCoordinator:
    """Sequences prompt compilation, provider calls, and result aggregation."""

    def __init__(
        self,
        gateway: ImageGateway,
        compiler: Optional[PromptCompiler] = None,
        resolver=None,
        registry: Optional[WorkflowRegistry] = None,
    ):
        self.gateway = gateway
        self.compiler = compiler or PromptCompiler()
        self.resolver = resolver or HttpImageResolver()
        self.registry = registry if registry is not None else WorkflowRegistry()

    # -------------------
    # New logos
    # -------------------

    async def generate_logos(
        self,
        request: GenerationRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        count = request.variation_count or 1
        run = WorkflowRun(
            self.registry,
            total_steps=4 + count,
            current_step="Generating AI prompts",
            message="Preparing logo generation prompts...",
            on_progress=on_progress,
        )
        logger.info(f"Workflow {run.workflow_id}: generating {count} logo(s) for {request.business.company_name!r}")

        try:
            if count > 1:
                prompts = self.compiler.generate_variations(request, count)
            else:
                prompts = [self.compiler.compile(request)]
            run.update(completed_steps=1, percentage=25, message=f"Generated {len(prompts)} prompt variations")

            run.advance(
                GenerationStatus.CREATING_LOGOS,
                current_step="Creating logo designs",
                completed_steps=2,
                message="Generating logos with AI...",
            )
            logos = await self._create_logos_from_prompts(run, prompts, request)

            run.advance(
                GenerationStatus.PROCESSING_RESULTS,
                current_step="Processing results",
                completed_steps=run.progress.total_steps - 1,
                percentage=75,
                message="Processing generated logos...",
            )
            processed = self.process_generation_results(run, logos)
        except Exception as exc:
            logger.exception("Logo generation workflow failed")
            return run.fail(str(exc) or "Unknown error occurred", "Logo generation failed")

        completed = sum(1 for logo in processed if logo.status == "completed")
        return run.complete(processed, f"Successfully generated {completed} logos")

    async def _create_logos_from_prompts(
        self,
        run: WorkflowRun,
        prompts: List[GeneratedPrompt],
        request: GenerationRequest,
    ) -> List[GeneratedLogo]:
        business = request.business
        inspiration = request.inspiration_logo
        logos: List[GeneratedLogo] = []

        for i, prompt in enumerate(prompts):
            item_start = time.perf_counter()
            try:
                if inspiration is not None and (inspiration.image_data or inspiration.image_url):
                    logger.info(f"Using context editing with inspiration logo for {business.company_name}")
                    input_image = inspiration.image_data or await self.resolver.resolve(inspiration.image_url)
                    result = await self.gateway.edit_image(
                        input_image,
                        build_context_edit_prompt(business),
                        aspect_ratio=prompt.aspect_ratio,
                        output_format="png",
                        prompt_upsampling=True,
                        safety_tolerance=2,
                    )
                else:
                    logger.debug(f"Generating logo {i + 1} from prompt: {prompt.main_prompt}")
                    result = await self.gateway.generate_image(
                        prompt.main_prompt,
                        aspect_ratio=prompt.aspect_ratio,
                        output_format="png",
                    )
            except Exception as exc:
                logger.error(f"Failed to generate logo {i + 1}: {exc}")
                result = ImageErr(error=str(exc) or "Unknown error")

            metadata = LogoMetadata(
                generation_type="new",
                company_name=business.company_name,
                industry=business.industry,
                styles=list(business.style_preferences),
                colors=list(business.color_preferences),
                inspiration_used=inspiration is not None,
                processing_time=time.perf_counter() - item_start,
            )
            logos.append(self._build_logo(result, prompt, metadata, "Unknown generation error"))

            run.update(
                completed_steps=run.progress.completed_steps + 1,
                percentage=25 + ((i + 1) / len(prompts)) * 40,
                message=f"Generated logo {i + 1} of {len(prompts)}",
                generated_logos=list(logos),
            )

        return logos

    def process_generation_results(self, run: WorkflowRun, logos: List[GeneratedLogo]) -> List[GeneratedLogo]:
        run.update(message="Processing and optimizing generated logos...")
        ordered = order_results(logos)
        run.update(generated_logos=ordered, percentage=95, message="Finalizing results...")
        return ordered

    # -------------------
    # Variations
    # -------------------

    async def generate_variations(
        self,
        original_logo: GeneratedLogo,
        count: int = 3,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        templates = VARIATION_TEMPLATES[: max(0, min(count, len(VARIATION_TEMPLATES)))]
        run = WorkflowRun(
            self.registry,
            total_steps=4 + len(templates),
            current_step="Creating logo variations",
            message="Creating distinct variations of your selected logo...",
            on_progress=on_progress,
        )

        try:
            company_name = original_logo.metadata.company_name
            variation_prompts = [
                (name, template.format(company_name=company_name)) for name, template in templates
            ]
            run.update(completed_steps=1, percentage=10, message=f"Prepared {len(variation_prompts)} variations")

            run.advance(GenerationStatus.CREATING_LOGOS, current_step="Creating logo variations", completed_steps=2)
            variations: List[GeneratedLogo] = []
            for i, (name, variation_prompt) in enumerate(variation_prompts):
                run.update(message=f"Creating {name}...")
                variations.append(await self._create_variation(original_logo, name, variation_prompt))
                run.update(
                    completed_steps=run.progress.completed_steps + 1,
                    percentage=10 + ((i + 1) / len(variation_prompts)) * 70,
                    generated_logos=list(variations),
                )

            run.advance(
                GenerationStatus.PROCESSING_RESULTS,
                current_step="Processing results",
                completed_steps=run.progress.total_steps - 1,
                percentage=85,
                message="Processing logo variations...",
            )
            processed = self.process_generation_results(run, variations)
        except Exception as exc:
            logger.exception("Logo variations generation failed")
            return run.fail(str(exc) or "Unknown error occurred", "Variation generation failed")

        completed = sum(1 for logo in processed if logo.status == "completed")
        return run.complete(processed, f"Generated {completed} logo variations")

    async def _create_variation(self, original_logo: GeneratedLogo, name: str, variation_prompt: str) -> GeneratedLogo:
        base_prompt = original_logo.prompt
        item_start = time.perf_counter()
        logger.debug(f"{name} prompt: {variation_prompt}")

        try:
            if original_logo.image_data or original_logo.image_url:
                input_image = original_logo.image_data or await self.resolver.resolve(original_logo.image_url)
                result: ImageResult = await self.gateway.edit_image(
                    input_image,
                    variation_prompt,
                    aspect_ratio=base_prompt.aspect_ratio,
                    output_format="png",
                    prompt_upsampling=True,
                    safety_tolerance=2,
                )
            else:
                result = await self.gateway.generate_image(
                    f"{base_prompt.main_prompt}. {variation_prompt}",
                    aspect_ratio=base_prompt.aspect_ratio,
                    output_format="png",
                )
        except ImageResolutionError as exc:
            result = ImageErr(error=f"Failed to prepare image for editing: {exc}")
        except Exception as exc:
            result = ImageErr(error=str(exc) or f"Failed to generate {name}")

        if isinstance(result, ImageErr):
            logger.error(f"Failed to create {name}: {result.error}")

        metadata = self._derived_metadata(original_logo, "variation", time.perf_counter() - item_start)
        prompt = base_prompt.model_copy(update={"main_prompt": variation_prompt})
        return self._build_logo(result, prompt, metadata, f"Failed to generate {name}")

    # -------------------
    # Edits
    # -------------------

    async def edit_logo(
        self,
        original_logo: GeneratedLogo,
        instructions: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        run = WorkflowRun(
            self.registry,
            total_steps=5,
            current_step="Preparing edit",
            message="Compiling editing instructions...",
            on_progress=on_progress,
        )
        try:
            prompt = self.compiler.compile_edit(instructions, metadata_for_logo(original_logo.metadata))
        except Exception as exc:
            return run.fail(str(exc), "Logo editing failed")
        return await self._run_edit(run, original_logo, prompt)

    async def execute_command(
        self,
        current_logo: GeneratedLogo,
        command: EditCommand,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        """Edit path for a command already produced by the parser."""
        return await self.edit_with_prompt(
            current_logo,
            command.prompt,
            negative_prompt=command.negative_prompt,
            strength=command.strength,
            on_progress=on_progress,
            message=f"Applying {command.type.value.replace('_', ' ')}...",
        )

    async def edit_with_prompt(
        self,
        current_logo: GeneratedLogo,
        main_prompt: str,
        negative_prompt: Optional[str] = None,
        strength: Optional[float] = None,
        aspect_ratio: Optional[str] = None,
        generation_type: GenerationType = "edit",
        on_progress: Optional[ProgressCallback] = None,
        message: str = "Applying changes...",
    ) -> GenerationResult:
        """Edit ``current_logo`` with a ready-made prompt instead of compiled instructions."""
        run = WorkflowRun(
            self.registry,
            total_steps=5,
            current_step="Preparing edit",
            message=message,
            on_progress=on_progress,
        )
        try:
            settings = QUALITY_PRESETS["edit"]
            if strength is not None:
                settings = settings.model_copy(update={"strength": strength})
            update = {
                "main_prompt": main_prompt,
                "negative_prompt": negative_prompt,
                "quality_settings": settings,
                "metadata": metadata_for_logo(current_logo.metadata),
            }
            if aspect_ratio:
                update["aspect_ratio"] = aspect_ratio
            prompt = self.compiler.optimize(current_logo.prompt.model_copy(update=update))
        except Exception as exc:
            return run.fail(str(exc), "Logo editing failed")
        return await self._run_edit(run, current_logo, prompt, generation_type)

    async def _run_edit(
        self,
        run: WorkflowRun,
        logo: GeneratedLogo,
        prompt: GeneratedPrompt,
        generation_type: GenerationType = "edit",
    ) -> GenerationResult:
        try:
            run.update(completed_steps=1, percentage=25, message="Editing prompt ready")
            run.advance(
                GenerationStatus.CREATING_LOGOS,
                current_step="Editing logo",
                completed_steps=2,
                message="Applying changes with AI...",
            )

            try:
                input_image = logo.image_data or await self.resolver.resolve(logo.image_url)
            except ImageResolutionError as exc:
                return run.fail(f"Failed to prepare image for editing: {exc}", "Logo editing failed")

            item_start = time.perf_counter()
            try:
                result: ImageResult = await self.gateway.edit_image(
                    input_image,
                    prompt.main_prompt,
                    aspect_ratio=prompt.aspect_ratio,
                    output_format="png",
                )
            except Exception as exc:
                result = ImageErr(error=str(exc) or "Failed to edit logo")

            metadata = self._derived_metadata(logo, generation_type, time.perf_counter() - item_start)
            edited = self._build_logo(result, prompt, metadata, "Failed to edit logo")
            run.update(completed_steps=3, percentage=65, generated_logos=[edited])

            if edited.status == "failed":
                return run.fail(edited.error or "Failed to edit logo", "Logo editing failed", logos=[edited])

            run.advance(
                GenerationStatus.PROCESSING_RESULTS,
                current_step="Processing results",
                completed_steps=4,
                percentage=75,
                message="Processing edited logo...",
            )
            processed = self.process_generation_results(run, [edited])
        except Exception as exc:
            logger.exception("Logo editing workflow failed")
            return run.fail(str(exc) or "Unknown error occurred", "Logo editing failed")
        return run.complete(processed, "Logo edited successfully")

    # -------------------
    # Progress registry access
    # -------------------

    def get_generation_progress(self, workflow_id: str) -> Optional[GenerationProgress]:
        return self.registry.get(workflow_id)

    def cancel_generation(self, workflow_id: str) -> bool:
        """Stop tracking a running workflow; in-flight provider calls still finish."""
        cancelled = self.registry.cancel(workflow_id)
        if cancelled:
            logger.info(f"Workflow {workflow_id} cancelled")
        return cancelled

    def active_workflow_count(self) -> int:
        return len(self.registry)

    # -------------------
    # Helpers
    # -------------------

    @staticmethod
    def _derived_metadata(logo: GeneratedLogo, generation_type: GenerationType, elapsed: float) -> LogoMetadata:
        return logo.metadata.model_copy(
            update={
                "created_at": utc_now(),
                "generation_type": generation_type,
                "processing_time": elapsed,
            }
        )

    @staticmethod
    def _build_logo(
        result: ImageResult,
        prompt: GeneratedPrompt,
        metadata: LogoMetadata,
        default_error: str,
    ) -> GeneratedLogo:
        if isinstance(result, ImageOk) and result.image_url:
            return GeneratedLogo(
                id=new_logo_id(),
                image_url=result.image_url,
                image_data=result.image_data,
                prompt=prompt,
                request_id=result.generation_id,
                metadata=metadata,
                status="completed",
            )
        error = result.error if isinstance(result, ImageErr) else "Provider returned no image"
        return GeneratedLogo(
            id=new_logo_id(),
            prompt=prompt,
            request_id=result.generation_id,
            metadata=metadata,
            status="failed",
            error=error or default_error,
        )
