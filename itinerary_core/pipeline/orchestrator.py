"""Generation orchestration - model generator first, data-source generator on failure."""

import logging

from itinerary_core.collaborators.base import Generator, PlaceSearch, RoutingClient
from itinerary_core.collaborators.executor import CallContext, CollaboratorExecutor
from itinerary_core.collaborators.factory import build_executor
from itinerary_core.config import Settings, get_settings
from itinerary_core.errors import CollaboratorError, ParseError
from itinerary_core.models.inputs import BuildContext
from itinerary_core.models.reports import GenerationResult, GenerationSource
from itinerary_core.pipeline.builder import build_itinerary
from itinerary_core.pipeline.text_repair import parse_generation_text
from itinerary_core.validation.service import ValidationService

logger = logging.getLogger(__name__)


async def _generate(generator: Generator, context: BuildContext, executor: CollaboratorExecutor) -> dict:
    """Call a generator through the executor and parse text output."""
    raw = await executor.execute(
        CallContext(collaborator=f"generator:{generator.name}"),
        lambda: generator.generate(context),
    )
    if isinstance(raw, str):
        return parse_generation_text(raw)
    return raw


async def generate_and_build(
    context: BuildContext,
    generator: Generator | None,
    fallback_generator: Generator,
    place_search: PlaceSearch | None = None,
    routing: RoutingClient | None = None,
    executor: CollaboratorExecutor | None = None,
    validation: ValidationService | None = None,
    settings: Settings | None = None,
) -> GenerationResult:
    """Generate a raw itinerary and run the build pipeline over it.

    The model generator is tried first. Unrecoverable text (ParseError) or a
    collaborator failure switches to the data-source generator; a failure
    there propagates.

    Args:
        context: Trip request
        generator: Model-backed generator (None goes straight to the fallback)
        fallback_generator: Data-source generator
        place_search: Venue search passed to the pipeline
        routing: Routing collaborator passed to the pipeline
        executor: Shared collaborator executor
        validation: Validation service for the final pass
        settings: Thresholds

    Returns:
        GenerationResult with the build output and where the raw data came from
    """
    settings = settings or get_settings()
    executor = executor or build_executor(settings)

    raw: dict | None = None
    fallback_reason: str | None = None
    if generator is not None:
        try:
            raw = await _generate(generator, context, executor)
        except ParseError as e:
            fallback_reason = f"parse_error: {e}"
        except CollaboratorError as e:
            fallback_reason = f"{type(e).__name__}: {e}"
    else:
        fallback_reason = "no_model_generator"

    if raw is not None:
        source, provider = GenerationSource.model, generator.name
    else:
        logger.warning(
            f"Falling back to {fallback_generator.name} generator",
            extra={"structured": {"reason": fallback_reason}},
        )
        raw = await _generate(fallback_generator, context, executor)
        source, provider = GenerationSource.data_source, fallback_generator.name

    build = await build_itinerary(
        raw,
        context,
        place_search=place_search,
        routing=routing,
        executor=executor,
        validation=validation,
        settings=settings,
    )
    logger.info(f"Generated itinerary via {provider} ({source.value})")
    return GenerationResult(build=build, source=source, provider=provider, fallback_reason=fallback_reason)
