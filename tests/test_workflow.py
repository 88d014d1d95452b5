import asyncio

import httpx
import pytest

from conftest import INLINE_IMAGE, FakeGateway, FakeResolver
from logo_studio.schemas import (
    BusinessInfo,
    EditCommand,
    EditCommandType,
    GenerationProgress,
    GenerationRequest,
    GenerationStatus,
    InspirationLogo,
    StructuredCommand,
)
from logo_studio.services.image_gateway import ImageErr, ImageOk
from logo_studio.services.image_resolver import HttpImageResolver
from logo_studio.services.workflow import (
    VARIATION_TEMPLATES,
    WorkflowCoordinator,
    WorkflowRegistry,
    WorkflowRun,
    order_results,
)


class HookGateway(FakeGateway):
    """FakeGateway that runs ``hook()`` at the start of every provider call."""

    def __init__(self, hook, outcomes=None):
        super().__init__(outcomes)
        self.hook = hook

    async def generate_image(self, prompt, aspect_ratio="1:1", output_format="png"):
        self.hook()
        return await super().generate_image(prompt, aspect_ratio, output_format)


def statuses(progress_log):
    """Distinct statuses in the order they were first reported."""
    return list(dict.fromkeys(p.status for p in progress_log))


def assert_monotonic(progress_log):
    percentages = [p.percentage for p in progress_log]
    assert percentages == sorted(percentages)


# -------------------
# generate_logos
# -------------------

@pytest.mark.asyncio
async def test_generate_single_logo(coordinator, gateway, generation_request, progress_log):
    result = await coordinator.generate_logos(generation_request, on_progress=progress_log.append)

    assert result.success is True
    assert result.total_generated == 1
    assert result.failed_count == 0
    assert result.error is None
    assert result.total_processing_time >= 0

    logo = result.logos[0]
    assert logo.status == "completed"
    assert logo.image_url == "https://img.test/1.png"
    assert logo.request_id == "gen-1"
    assert logo.metadata.generation_type == "new"
    assert logo.metadata.company_name == "Acme"
    assert logo.metadata.inspiration_used is False

    assert len(gateway.calls) == 1
    assert gateway.calls[0]["kind"] == "generate"
    assert gateway.calls[0]["prompt"] == logo.prompt.main_prompt


@pytest.mark.asyncio
async def test_generate_progress_sequence(coordinator, generation_request, progress_log):
    await coordinator.generate_logos(generation_request, on_progress=progress_log.append)

    assert statuses(progress_log) == [
        GenerationStatus.GENERATING_PROMPTS,
        GenerationStatus.CREATING_LOGOS,
        GenerationStatus.PROCESSING_RESULTS,
        GenerationStatus.COMPLETED,
    ]
    assert_monotonic(progress_log)
    assert progress_log[0].percentage == 0
    assert 25 in [p.percentage for p in progress_log]
    assert 65 in [p.percentage for p in progress_log]
    assert 75 in [p.percentage for p in progress_log]
    assert 95 in [p.percentage for p in progress_log]

    final = progress_log[-1]
    assert final.percentage == 100
    assert final.completed_steps == final.total_steps == 5
    assert len(final.generated_logos) == 1
    assert len({p.workflow_id for p in progress_log}) == 1


@pytest.mark.asyncio
async def test_generate_multiple_variations(coordinator, gateway, business, progress_log):
    request = GenerationRequest(business=business, variation_count=3)

    result = await coordinator.generate_logos(request, on_progress=progress_log.append)

    assert result.total_generated == 3
    assert len(result.logos) == 3
    assert [call["kind"] for call in gateway.calls] == ["generate"] * 3
    assert "Variation 1:" in gateway.calls[0]["prompt"]
    assert "Variation 3:" in gateway.calls[2]["prompt"]
    assert progress_log[-1].total_steps == 7

    creating = [p.percentage for p in progress_log if p.status == GenerationStatus.CREATING_LOGOS]
    assert creating[-1] == pytest.approx(65)
    assert_monotonic(progress_log)


@pytest.mark.asyncio
async def test_generate_aggregates_item_failures(compiler, resolver, registry, business):
    gateway = FakeGateway(
        outcomes=[
            ImageErr(error="Content was moderated by safety filters", generation_id="gen-x"),
            RuntimeError("provider down"),
        ]
    )
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=resolver, registry=registry)

    result = await coordinator.generate_logos(GenerationRequest(business=business, variation_count=3))

    assert result.success is True
    assert result.total_generated == 1
    assert result.failed_count == 2
    assert len(result.logos) == 3
    # Completed logos come first.
    assert [logo.status for logo in result.logos] == ["completed", "failed", "failed"]
    errors = {logo.error for logo in result.logos if logo.status == "failed"}
    assert errors == {"Content was moderated by safety filters", "provider down"}
    moderated = next(logo for logo in result.logos if logo.request_id == "gen-x")
    assert moderated.image_url == ""


@pytest.mark.asyncio
async def test_generate_error_path(coordinator, gateway, progress_log):
    request = GenerationRequest(business=BusinessInfo(company_name="   "))

    result = await coordinator.generate_logos(request, on_progress=progress_log.append)

    assert result.success is False
    assert result.logos == []
    assert result.total_generated == 0
    assert result.failed_count == 1
    assert "company name" in result.error
    assert gateway.calls == []

    assert statuses(progress_log) == [GenerationStatus.GENERATING_PROMPTS, GenerationStatus.ERROR]
    final = progress_log[-1]
    assert final.current_step == "Error"
    assert final.error == result.error
    assert final.percentage == 0
    assert coordinator.active_workflow_count() == 0


@pytest.mark.asyncio
async def test_generate_with_inline_inspiration(coordinator, gateway, resolver, business):
    request = GenerationRequest(
        business=business,
        inspiration_logo=InspirationLogo(category="technology", style="modern", image_data=INLINE_IMAGE),
    )

    result = await coordinator.generate_logos(request)

    assert result.total_generated == 1
    assert result.logos[0].metadata.inspiration_used is True
    call = gateway.calls[0]
    assert call["kind"] == "edit"
    assert call["input_image"] == INLINE_IMAGE
    assert call["prompt_upsampling"] is True
    assert 'Replace any existing company name or text with "Acme"' in call["prompt"]
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_generate_resolves_inspiration_url(coordinator, gateway, resolver, business):
    request = GenerationRequest(
        business=business,
        inspiration_logo=InspirationLogo(image_url="https://img.test/inspiration.png"),
    )

    await coordinator.generate_logos(request)

    assert resolver.calls == ["https://img.test/inspiration.png"]
    assert gateway.calls[0]["input_image"] == INLINE_IMAGE


@pytest.mark.asyncio
async def test_generate_inspiration_fetch_failure_is_per_item(compiler, gateway, registry, business):
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=FakeResolver(fail=True), registry=registry)
    request = GenerationRequest(
        business=business,
        variation_count=2,
        inspiration_logo=InspirationLogo(image_url="https://img.test/missing.png"),
    )

    result = await coordinator.generate_logos(request)

    assert result.success is True
    assert result.total_generated == 0
    assert result.failed_count == 2
    assert all(logo.error == "Failed to fetch image: 404" for logo in result.logos)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_callback_errors_do_not_break_workflow(coordinator, generation_request):
    def explode(progress):
        raise ValueError("listener bug")

    result = await coordinator.generate_logos(generation_request, on_progress=explode)

    assert result.success is True


@pytest.mark.asyncio
async def test_concurrent_workflows_are_isolated(coordinator, business):
    first_log, second_log = [], []
    first = GenerationRequest(business=business, variation_count=2)
    second = GenerationRequest(business=business.model_copy(update={"company_name": "Globex"}))

    results = await asyncio.gather(
        coordinator.generate_logos(first, on_progress=first_log.append),
        coordinator.generate_logos(second, on_progress=second_log.append),
    )

    assert [r.total_generated for r in results] == [2, 1]
    assert len({p.workflow_id for p in first_log}) == 1
    assert len({p.workflow_id for p in second_log}) == 1
    assert first_log[0].workflow_id != second_log[0].workflow_id
    assert_monotonic(first_log)
    assert_monotonic(second_log)
    assert coordinator.active_workflow_count() == 0


# -------------------
# Progress registry
# -------------------

@pytest.mark.asyncio
async def test_progress_is_queryable_while_running(compiler, resolver, registry, generation_request, progress_log):
    seen = []

    def inspect():
        workflow_id = progress_log[0].workflow_id
        seen.append((coordinator.get_generation_progress(workflow_id), coordinator.active_workflow_count()))

    coordinator = WorkflowCoordinator(HookGateway(inspect), compiler=compiler, resolver=resolver, registry=registry)

    await coordinator.generate_logos(generation_request, on_progress=progress_log.append)

    snapshot, active = seen[0]
    assert isinstance(snapshot, GenerationProgress)
    assert snapshot.status == GenerationStatus.CREATING_LOGOS
    assert active == 1
    assert coordinator.get_generation_progress(progress_log[0].workflow_id) is None
    assert coordinator.active_workflow_count() == 0


@pytest.mark.asyncio
async def test_cancel_suppresses_further_progress(compiler, resolver, registry, business, progress_log):
    cancelled = []

    def cancel():
        cancelled.append(coordinator.cancel_generation(progress_log[0].workflow_id))

    gateway = HookGateway(cancel)
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=resolver, registry=registry)

    result = await coordinator.generate_logos(
        GenerationRequest(business=business, variation_count=2),
        on_progress=progress_log.append,
    )

    # The first call cancels; the second finds nothing left to cancel.
    assert cancelled == [True, False]
    # Cancellation is advisory: in-flight provider work still finishes.
    assert len(gateway.calls) == 2
    assert result.total_generated == 2
    assert progress_log[-1].status == GenerationStatus.CREATING_LOGOS
    assert all(p.status != GenerationStatus.COMPLETED for p in progress_log)
    assert coordinator.get_generation_progress(progress_log[0].workflow_id) is None


def test_cancel_unknown_workflow(coordinator):
    assert coordinator.cancel_generation("workflow_missing") is False


def test_registry_does_not_cancel_terminal_workflows():
    registry = WorkflowRegistry()
    done = GenerationProgress(
        workflow_id="workflow_done",
        status=GenerationStatus.COMPLETED,
        current_step="Completed",
        total_steps=5,
        percentage=100,
    )
    registry.track(done)

    assert registry.cancel("workflow_done") is False
    assert "workflow_done" in registry


def test_run_rejects_out_of_order_transitions(registry):
    run = WorkflowRun(registry, total_steps=5, current_step="Start", message="Starting")

    with pytest.raises(RuntimeError):
        run.advance(GenerationStatus.PROCESSING_RESULTS)

    run.advance(GenerationStatus.CREATING_LOGOS)
    assert registry.get(run.workflow_id).status == GenerationStatus.CREATING_LOGOS


def test_run_percentage_never_decreases(registry):
    run = WorkflowRun(registry, total_steps=5, current_step="Start", message="Starting")

    run.update(percentage=40)
    run.update(percentage=10)
    run.update(percentage=250)

    assert run.progress.percentage == 100


def test_order_results(sample_logo):
    def variant(status, seconds):
        metadata = sample_logo.metadata.model_copy(update={"processing_time": seconds})
        return sample_logo.model_copy(update={"status": status, "metadata": metadata})

    slow_ok, fast_ok, fast_failed = variant("completed", 5.0), variant("completed", 1.0), variant("failed", 0.1)

    assert order_results([fast_failed, slow_ok, fast_ok]) == [fast_ok, slow_ok, fast_failed]


# -------------------
# Variations
# -------------------

@pytest.mark.asyncio
async def test_variations_from_url_logo(coordinator, gateway, resolver, sample_logo, progress_log):
    result = await coordinator.generate_variations(sample_logo, on_progress=progress_log.append)

    assert result.success is True
    assert result.total_generated == 3
    assert resolver.calls == [sample_logo.image_url] * 3
    assert [call["kind"] for call in gateway.calls] == ["edit"] * 3
    assert all(call["input_image"] == INLINE_IMAGE for call in gateway.calls)
    assert all('"Acme"' in call["prompt"] for call in gateway.calls)
    assert "RESTRUCTURE this logo layout" in gateway.calls[0]["prompt"]
    assert "inverted color version" in gateway.calls[1]["prompt"]
    assert "Christmas decorations" in gateway.calls[2]["prompt"]

    for logo in result.logos:
        assert logo.metadata.generation_type == "variation"
        assert logo.metadata.company_name == "Acme"

    assert statuses(progress_log)[-1] == GenerationStatus.COMPLETED
    assert progress_log[-1].total_steps == 7
    assert_monotonic(progress_log)
    assert 10 in [p.percentage for p in progress_log]
    assert 85 in [p.percentage for p in progress_log]


@pytest.mark.asyncio
async def test_variations_resolution_failure(compiler, gateway, registry, sample_logo):
    resolver = FakeResolver(fail=True)
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=resolver, registry=registry)

    result = await coordinator.generate_variations(sample_logo)

    assert result.success is True
    assert result.total_generated == 0
    assert result.failed_count == 3
    assert len(resolver.calls) == 3
    assert gateway.calls == []
    assert all(logo.error.startswith("Failed to prepare image for editing") for logo in result.logos)


@pytest.mark.asyncio
async def test_variations_use_inline_data(coordinator, gateway, resolver, sample_logo):
    logo = sample_logo.model_copy(update={"image_data": INLINE_IMAGE})

    await coordinator.generate_variations(logo, count=1)

    assert resolver.calls == []
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_variations_without_image_generate_fresh(coordinator, gateway, sample_logo):
    logo = sample_logo.model_copy(update={"image_url": ""})

    result = await coordinator.generate_variations(logo, count=2)

    assert result.total_generated == 2
    assert [call["kind"] for call in gateway.calls] == ["generate", "generate"]
    assert gateway.calls[0]["prompt"].startswith(sample_logo.prompt.main_prompt + ". RESTRUCTURE")


@pytest.mark.asyncio
async def test_variation_count_is_capped(coordinator, gateway, sample_logo):
    result = await coordinator.generate_variations(sample_logo, count=7)

    assert len(result.logos) == len(VARIATION_TEMPLATES) == 3
    assert len(gateway.calls) == 3


# -------------------
# Edits
# -------------------

@pytest.mark.asyncio
async def test_edit_logo_success(coordinator, gateway, resolver, sample_logo, progress_log):
    result = await coordinator.edit_logo(sample_logo, "make it more blue", on_progress=progress_log.append)

    assert result.success is True
    assert result.total_generated == 1
    edited = result.logos[0]
    assert edited.metadata.generation_type == "edit"
    assert edited.metadata.company_name == "Acme"
    assert "Changes requested: make it more blue." in edited.prompt.main_prompt
    assert resolver.calls == [sample_logo.image_url]
    assert gateway.calls[0]["kind"] == "edit"
    assert gateway.calls[0]["input_image"] == INLINE_IMAGE

    assert statuses(progress_log) == [
        GenerationStatus.GENERATING_PROMPTS,
        GenerationStatus.CREATING_LOGOS,
        GenerationStatus.PROCESSING_RESULTS,
        GenerationStatus.COMPLETED,
    ]
    assert progress_log[-1].total_steps == 5
    assert_monotonic(progress_log)


@pytest.mark.asyncio
async def test_edit_logo_provider_failure(compiler, resolver, registry, sample_logo, progress_log):
    gateway = FakeGateway(outcomes=[ImageErr(error="Content was moderated by safety filters")])
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=resolver, registry=registry)

    result = await coordinator.edit_logo(sample_logo, "make it more blue", on_progress=progress_log.append)

    assert result.success is False
    assert result.error == "Content was moderated by safety filters"
    assert result.failed_count == 1
    assert len(result.logos) == 1
    assert result.logos[0].status == "failed"
    assert progress_log[-1].status == GenerationStatus.ERROR
    assert progress_log[-1].percentage == 65


@pytest.mark.asyncio
async def test_edit_logo_unfetchable_image(compiler, gateway, registry, sample_logo):
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=FakeResolver(fail=True), registry=registry)

    result = await coordinator.edit_logo(sample_logo, "make it more blue")

    assert result.success is False
    assert result.logos == []
    assert result.error.startswith("Failed to prepare image for editing")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_edit_logo_malformed_image_url(compiler, gateway, registry, sample_logo, progress_log):
    resolver = HttpImageResolver(
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    )
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=resolver, registry=registry)
    logo = sample_logo.model_copy(update={"image_url": "http://exa\x00mple.com/logo.png"})

    result = await coordinator.edit_logo(logo, "make it more blue", on_progress=progress_log.append)

    assert result.success is False
    assert result.error.startswith("Failed to prepare image for editing")
    assert progress_log[-1].status == GenerationStatus.ERROR
    assert coordinator.active_workflow_count() == 0
    assert gateway.calls == []


class ExplodingResolver:
    async def resolve(self, url):
        raise KeyError("cache slot")


@pytest.mark.asyncio
async def test_edit_logo_unexpected_error_ends_workflow(compiler, gateway, registry, sample_logo, progress_log):
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=ExplodingResolver(), registry=registry)

    result = await coordinator.edit_logo(sample_logo, "make it more blue", on_progress=progress_log.append)

    assert result.success is False
    assert "cache slot" in result.error
    assert progress_log[-1].status == GenerationStatus.ERROR
    assert_monotonic(progress_log)
    assert coordinator.active_workflow_count() == 0


@pytest.mark.asyncio
async def test_edit_logo_blank_instructions(coordinator, gateway, sample_logo):
    result = await coordinator.edit_logo(sample_logo, "   ")

    assert result.success is False
    assert result.error == "Edit instructions are empty."
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_execute_command_uses_command_prompt(coordinator, gateway, sample_logo):
    command = EditCommand(
        type=EditCommandType.COLOR_CHANGE,
        confidence=0.8,
        original_text="make it blue",
        structured_command=StructuredCommand(action="modify", target="overall", value="make it blue"),
        prompt="Make the logo blue",
        negative_prompt="blurry",
        strength=0.9,
    )

    result = await coordinator.execute_command(sample_logo, command)

    assert result.success is True
    assert gateway.calls[0]["prompt"] == "Make the logo blue"
    edited = result.logos[0]
    assert edited.prompt.main_prompt == "Make the logo blue"
    assert edited.prompt.negative_prompt == "blurry"
    assert edited.prompt.quality_settings.strength == 0.9
    assert edited.prompt.quality_settings.steps == 20
    assert edited.metadata.generation_type == "edit"


@pytest.mark.asyncio
async def test_edit_keeps_provider_image_url(compiler, resolver, registry, sample_logo):
    gateway = FakeGateway(outcomes=[ImageOk(image_url="https://img.test/edited.png", generation_id="gen-e")])
    coordinator = WorkflowCoordinator(gateway, compiler=compiler, resolver=resolver, registry=registry)

    result = await coordinator.edit_logo(sample_logo, "add a glow")

    assert result.logos[0].image_url == "https://img.test/edited.png"
    assert result.logos[0].image_data is None
    assert result.logos[0].request_id == "gen-e"


@pytest.mark.asyncio
async def test_edit_with_ready_prompt(coordinator, gateway, sample_logo, progress_log):
    result = await coordinator.edit_with_prompt(
        sample_logo,
        "Acme logo in autumn colors",
        strength=0.3,
        aspect_ratio="16:9",
        generation_type="variation",
        on_progress=progress_log.append,
    )

    assert result.success is True
    assert gateway.calls[0]["kind"] == "edit"
    assert gateway.calls[0]["prompt"] == "Acme logo in autumn colors"
    assert gateway.calls[0]["aspect_ratio"] == "16:9"
    edited = result.logos[0]
    assert edited.prompt.quality_settings.strength == 0.3
    assert edited.metadata.generation_type == "variation"
    assert progress_log[-1].status == GenerationStatus.COMPLETED
    assert edited.created_at.tzinfo is not None
