"""covproc command line entry point.

The job substrate runs `covproc run <reference>` once per pushed bundle,
with the quality-backend secret and verification settings in the
environment. Results and failures are printed to stdout as one JSON
document; logs go to stderr.

Exit status: 0 on success, 1 when the run failed.
"""

import json
import sys
from typing import Optional

import click
from pydantic import ValidationError

from coverage_processor import __version__
from coverage_processor.attestation import (
    AnnotationKeys,
    VerificationPolicy,
    fetch_verified_provenance,
    resolve_source,
)
from coverage_processor.core.config import Settings, get_settings
from coverage_processor.core.logging import configure_structlog
from coverage_processor.errors import CoverageProcessorError
from coverage_processor.pipeline import CoveragePipeline
from coverage_processor.triggers import parse_push_event


def _emit(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


def _failure(reference: str, exc: CoverageProcessorError) -> dict:
    return {"status": "failed", "reference": reference, **exc.to_dict()}


@click.group()
@click.version_option(__version__, prog_name="covproc")
@click.option(
    "--debug/--no-debug",
    default=None,
    help="Human-readable debug logging (default: DEBUG setting).",
)
@click.option(
    "--keep-workspace/--no-keep-workspace",
    default=None,
    help="Do not delete the scratch workspace after the run.",
)
@click.pass_context
def main(ctx: click.Context, debug: Optional[bool], keep_workspace: Optional[bool]) -> None:
    """Turn container coverage bundles into source-relative reports."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration:\n{exc}") from exc

    overrides = {}
    if debug is not None:
        overrides["debug"] = debug
    if keep_workspace is not None:
        overrides["keep_workspace"] = keep_workspace
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_structlog(debug=settings.debug)
    ctx.obj = settings


@main.command()
@click.argument("reference")
@click.option("--run-id", default=None, help="Run ID for log correlation.")
@click.pass_obj
def run(settings: Settings, reference: str, run_id: Optional[str]) -> None:
    """Process the coverage bundle at REFERENCE."""
    try:
        result = CoveragePipeline(settings).run(reference, run_id=run_id)
    except CoverageProcessorError as exc:
        _emit(_failure(reference, exc))
        sys.exit(1)
    _emit(result.to_dict())


@main.command()
@click.argument("image")
@click.pass_obj
def resolve(settings: Settings, image: str) -> None:
    """Print the repository and commit IMAGE was built from."""
    keys = AnnotationKeys(
        repo_url=settings.repo_url_annotation,
        commit_sha=settings.commit_sha_annotation,
    )
    try:
        records = fetch_verified_provenance(
            image,
            VerificationPolicy.from_settings(settings),
            cosign_bin=settings.cosign_bin,
            timeout=settings.attestation_timeout,
        )
        source = resolve_source(records, keys)
    except CoverageProcessorError as exc:
        exc.step = exc.step or "resolve"
        _emit(_failure(image, exc))
        sys.exit(1)
    _emit({"image": image, **source.to_dict()})


@main.command("handle-event")
@click.argument("payload", type=click.File("r"), default="-")
@click.pass_obj
def handle_event(settings: Settings, payload) -> None:
    """Run the pipeline for every tag in a registry push event.

    PAYLOAD is a JSON file, or stdin when omitted. Each tag is an
    independent run; one failing does not stop the others.
    """
    try:
        references = parse_push_event(json.load(payload))
    except ValueError as exc:
        raise click.ClickException(f"Unusable push event: {exc}") from exc

    pipeline = CoveragePipeline(settings)
    outcomes: list[dict] = []
    failed = False
    for reference in references:
        try:
            outcomes.append(pipeline.run(reference).to_dict())
        except CoverageProcessorError as exc:
            failed = True
            outcomes.append(_failure(reference, exc))

    _emit(outcomes)
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
