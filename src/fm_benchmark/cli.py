"""
Command-line interface for the Foundation Models Benchmark.
"""

import asyncio
import sys
from pathlib import Path
from typing import Callable, Optional

import click

from .client import BedrockLanguageModel
from .config import BenchmarkConfig, load_config_with_auto_discovery
from .environment import capture_environment, describe_memory
from .exceptions import BenchmarkError, ImportParseError
from .logging import get_logger, setup_logging
from .models import BenchmarkPrompt, BenchmarkResult, EnvironmentSnapshot
from .prompts import DEFAULT_PROMPT_NAME, available_prompts, get_prompt
from .reconcile import reconcile
from .report import BenchmarkReport, format_interval, format_rate, load_report_metrics, render_comparison
from .runner import BenchmarkRunner, RunnerConfiguration
from .session import LanguageModel
from .storage import ResultStore
from .trace import parse_trace_export


logger = get_logger(__name__)

RULE = "=" * 80

EXPORT_XPATH = '/trace-toc/run[@number="1"]/data/table[@schema="FoundationModelsTable"]'


def create_language_model(config: BenchmarkConfig) -> LanguageModel:
    """Build the language model described by the configuration."""
    return BedrockLanguageModel(
        model_id=config.model_id,
        region=config.aws_region,
        aws_profile=config.aws_profile
    )


def print_environment(environment: EnvironmentSnapshot):
    click.echo("Environment")
    click.echo("-" * 40)
    click.echo(f"Device: {environment.device_name}")
    if environment.cpu_model:
        click.echo(f"CPU: {environment.cpu_model} {environment.cpu_cores or 0}-core")
    if environment.gpu_model:
        click.echo(f"GPU: {environment.gpu_model}")
    memory = describe_memory(environment.total_memory)
    if memory:
        click.echo(f"RAM: {memory}")
    click.echo(f"OS: {environment.system_name} {environment.system_version}")
    click.echo(f"Locale: {environment.locale_identifier}")
    click.echo()
    click.echo(RULE)
    click.echo()


def print_metrics(result: BenchmarkResult):
    metrics = result.metrics
    click.echo("\nEstimated Metrics:")
    click.echo(f"  Duration: {metrics.duration:.2f}s")
    if metrics.time_to_first_token is not None:
        click.echo(f"  Time to First Token: {format_interval(metrics.time_to_first_token)}")
    click.echo(f"  Prompt Tokens (est.): {metrics.prompt_token_estimate}")
    click.echo(f"  Response Tokens (est.): {metrics.response_token_estimate}")
    click.echo(f"  Total Tokens (est.): {metrics.total_token_estimate}")
    click.echo(f"  Tokens/sec (est.): {format_rate(metrics.tokens_per_second)}")


def print_trace_instructions(include_record_step: bool):
    click.echo(RULE)
    if include_record_step:
        click.echo("To get ACTUAL token counts with xctrace:")
        click.echo("   xctrace record --instrument 'Foundation Models' \\")
        click.echo("     --output token-test.trace \\")
        click.echo("     --launch -- fm-benchmark token-test")
        click.echo()
        click.echo("   Then export:")
    else:
        click.echo("To extract actual token data, export the trace:")
    click.echo("   xctrace export \\")
    click.echo("     --input token-test.trace \\")
    click.echo(f"     --xpath '{EXPORT_XPATH}' \\")
    click.echo("     > token-export.xml")
    click.echo()
    click.echo("   Then compare: fm-benchmark parse-trace token-export.xml")


def resolve_prompt(
    prompt_name: Optional[str],
    instructions: Optional[str],
    user_prompt: Optional[str]
) -> BenchmarkPrompt:
    """Pick a built-in prompt, or build one from explicit text."""
    if instructions is not None or user_prompt is not None:
        base = get_prompt(prompt_name or DEFAULT_PROMPT_NAME)
        return BenchmarkPrompt(
            instructions=instructions if instructions is not None else base.instructions,
            user_prompt=user_prompt if user_prompt is not None else base.user_prompt
        )
    return get_prompt(prompt_name or DEFAULT_PROMPT_NAME)


def make_live_printer() -> Callable[[str], None]:
    """Observer that echoes only the newly streamed suffix of each snapshot."""
    printed = 0

    def on_partial(text: str):
        nonlocal printed
        if len(text) >= printed:
            click.echo(text[printed:], nl=False)
        else:
            click.echo("\n" + text, nl=False)
        printed = len(text)

    return on_partial


def execute_benchmark(
    ctx: click.Context,
    prompt: BenchmarkPrompt,
    completion_message: str,
    include_preview: bool,
    output: Optional[str],
    markdown: Optional[str],
    store: bool,
    live: bool,
    environment: Optional[EnvironmentSnapshot] = None
):
    """
    Run one benchmark and print, save, and store its result.

    An already captured ``environment`` is attached to the result instead of
    probing the machine a second time.
    """
    config: BenchmarkConfig = ctx.obj['config']
    error_reporter = ctx.obj['benchmark_logger'].get_error_reporter()

    runner = BenchmarkRunner(
        create_language_model(config),
        configuration=RunnerConfiguration(prompt=prompt, options=config.generation_options()),
        accumulator=config.transcript_accumulator(),
        environment_provider=(lambda: environment) if environment is not None else capture_environment
    )

    try:
        result = asyncio.run(runner.run(make_live_printer() if live else None))
    except KeyboardInterrupt:
        logger.info("Benchmark interrupted by user")
        click.echo("\nBenchmark interrupted by user", err=True)
        sys.exit(1)
    except BenchmarkError as e:
        error_reporter.report_generation_error(e, operation="run", model_id=config.model_id)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if live:
        click.echo()

    click.echo(f"\n{completion_message}")
    print_metrics(result)

    if include_preview:
        preview = result.response_text[:config.preview_chars]
        click.echo(f"\nResponse preview (first {config.preview_chars} chars):")
        click.echo(f"  {preview}...")
        click.echo()

    report = BenchmarkReport(result)
    try:
        if output:
            report.save(output, format="json")
            click.echo(f"Report saved to {output}")
        if markdown:
            report.save(markdown, format="markdown")
            click.echo(f"Markdown summary saved to {markdown}")
        if store:
            run_id = ctx.obj['result_store'].save_result(
                result, run_name=config.model_id.split('.')[-1]
            )
            click.echo(f"Run ID: {run_id}")
    except BenchmarkError as e:
        error_reporter.report_storage_error(e, operation="save_report", file_path=getattr(e, 'path', None))
        click.echo(f"Error saving report: {e}", err=True)
        sys.exit(1)

    reported_usage = getattr(runner.last_session, "reported_usage", None)
    if reported_usage is not None:
        click.echo("\nProvider-reported usage:")
        click.echo(render_comparison(reconcile(result.metrics, reported_usage)))
        click.echo()

    return result


@click.group()
@click.version_option(package_name="fm-benchmark")
@click.option('--config', '-c',
              help='Path to configuration file')
@click.option('--storage-path',
              help='Path to store benchmark results (overrides config)',
              envvar='FM_BENCHMARK_STORAGE_PATH')
@click.option('--model', '-m',
              help='Model identifier to benchmark (overrides config)')
@click.option('--region',
              help='AWS region (overrides config)')
@click.option('--log-level',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level (overrides config)')
@click.option('--log-file',
              help='Log file path (overrides config)')
@click.pass_context
def cli(ctx, config: Optional[str], storage_path: Optional[str], model: Optional[str],
        region: Optional[str], log_level: Optional[str], log_file: Optional[str]):
    """Foundation Models Benchmark - time streamed generations and check token estimates."""
    ctx.ensure_object(dict)

    config_overrides = {}
    if storage_path:
        config_overrides['storage_path'] = storage_path
    if model:
        config_overrides['model_id'] = model
    if region:
        config_overrides['aws_region'] = region
    if log_level:
        config_overrides['log_level'] = log_level.upper()
    if log_file:
        config_overrides['log_file'] = log_file

    try:
        benchmark_config = load_config_with_auto_discovery(
            config_file=config,
            config_overrides=config_overrides
        )
    except (ValueError, FileNotFoundError) as e:
        click.echo(f"Error initializing configuration: {e}", err=True)
        sys.exit(1)

    benchmark_logger = setup_logging(benchmark_config)

    ctx.obj['config'] = benchmark_config
    ctx.obj['benchmark_logger'] = benchmark_logger
    ctx.obj['result_store'] = ResultStore(benchmark_config.storage_path)

    logger.debug("CLI initialized", storage_path=benchmark_config.storage_path)


@cli.command()
@click.option('--prompt', '-p', 'prompt_name', type=click.Choice(available_prompts()),
              help='Built-in prompt to use')
@click.option('--instructions', help='Custom instructions text')
@click.option('--user-prompt', help='Custom user prompt text')
@click.option('--output', '-o', default='benchmark-result.json', show_default=True,
              help='Path for the JSON report')
@click.option('--markdown', help='Optional path for a markdown summary')
@click.option('--store/--no-store', default=True, show_default=True,
              help='Keep the result in the result store')
@click.option('--live', is_flag=True, help='Print the response as it streams')
@click.pass_context
def run(ctx, prompt_name: Optional[str], instructions: Optional[str], user_prompt: Optional[str],
        output: Optional[str], markdown: Optional[str], store: bool, live: bool):
    """Run a benchmark and print its metrics and a response preview."""
    click.echo("Foundation Models Benchmark")
    click.echo(RULE)
    click.echo()
    environment = capture_environment()
    print_environment(environment)

    execute_benchmark(
        ctx,
        prompt=resolve_prompt(prompt_name, instructions, user_prompt),
        completion_message="Benchmark completed successfully!",
        include_preview=True,
        output=output,
        markdown=markdown,
        store=store,
        live=live,
        environment=environment
    )
    print_trace_instructions(include_record_step=True)


@cli.command('token-test')
@click.option('--prompt', '-p', 'prompt_name', type=click.Choice(available_prompts()),
              help='Built-in prompt to use')
@click.option('--output', '-o', default='benchmark-result.json', show_default=True,
              help='Path for the JSON report')
@click.pass_context
def token_test(ctx, prompt_name: Optional[str], output: Optional[str]):
    """Run a benchmark while an external trace recorder is attached."""
    click.echo("Running benchmark with xctrace Foundation Models instrument recording...")
    click.echo("Make sure xctrace is recording this process!")
    click.echo()

    execute_benchmark(
        ctx,
        prompt=resolve_prompt(prompt_name, None, None),
        completion_message="Benchmark completed!",
        include_preview=False,
        output=output,
        markdown=None,
        store=True,
        live=False
    )
    click.echo()
    print_trace_instructions(include_record_step=False)


@cli.command('parse-trace')
@click.argument('export_path', type=click.Path())
@click.option('--result', '-r', 'result_path', default='benchmark-result.json', show_default=True,
              help='JSON report to compare against, if it exists')
@click.option('--run-id', help='Compare against a stored run instead of --result')
@click.pass_context
def parse_trace(ctx, export_path: str, result_path: str, run_id: Optional[str]):
    """Parse a trace export and compare it with a benchmark report."""
    error_reporter = ctx.obj['benchmark_logger'].get_error_reporter()

    try:
        actual = parse_trace_export(export_path)
    except ImportParseError as e:
        error_reporter.report_import_error(e, file_path=export_path)
        click.echo(f"Failed to parse trace export: {e}", err=True)
        sys.exit(1)

    click.echo("ACTUAL Token Counts (from trace export):")
    click.echo(RULE)
    click.echo(f"  Prompt Tokens:      {actual.prompt_tokens}")
    click.echo(f"  Response Tokens:    {actual.response_tokens}")
    click.echo(f"  Total Tokens:       {actual.total_tokens}")
    click.echo()

    if run_id:
        try:
            result_file = ctx.obj['result_store'].result_path(run_id)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    else:
        result_file = Path(result_path)
        if not result_file.exists():
            click.echo(f"No benchmark report found at {result_file}; skipping comparison.")
            return

    try:
        metrics = load_report_metrics(result_file)
    except ImportParseError as e:
        error_reporter.report_import_error(e, file_path=result_file)
        click.echo(f"Failed to read benchmark report: {e}", err=True)
        sys.exit(1)

    click.echo(render_comparison(reconcile(metrics, actual)))


@cli.command('list-runs')
@click.pass_context
def list_runs(ctx):
    """List stored benchmark runs."""
    store: ResultStore = ctx.obj['result_store']

    run_ids = store.list_runs()
    if not run_ids:
        click.echo("No runs found.")
        return

    click.echo(f"Runs ({len(run_ids)}):")
    for run_id in run_ids:
        try:
            summary = store.get_run_summary(run_id)
        except BenchmarkError as e:
            click.echo(f"  {run_id}: unreadable ({e})")
            continue
        click.echo(f"  {run_id}:")
        click.echo(f"    Created: {summary['created_at']}")
        click.echo(f"    Duration: {summary['duration']:.2f}s")
        click.echo(f"    Total tokens (est.): {summary['total_token_estimate']}")
        click.echo(f"    Tokens/sec (est.): {format_rate(summary['tokens_per_second'])}")
        click.echo()


@cli.command('show-run')
@click.argument('run_id')
@click.option('--markdown', is_flag=True, help='Print the stored markdown summary')
@click.pass_context
def show_run(ctx, run_id: str, markdown: bool):
    """Show detailed information about a stored run."""
    store: ResultStore = ctx.obj['result_store']

    try:
        summary = store.get_run_summary(run_id)
    except (ValueError, BenchmarkError) as e:
        click.echo(f"Error showing run: {e}", err=True)
        sys.exit(1)

    if markdown:
        markdown_path = store.result_path(run_id).with_name("report.md")
        if markdown_path.exists():
            click.echo(markdown_path.read_text(encoding='utf-8'))
            return

    click.echo(f"Run ID: {run_id}")
    click.echo(f"Device: {summary['device_name']} ({summary['system_name']} {summary['system_version']})")
    click.echo(f"Created: {summary['created_at']}")
    click.echo(f"Duration: {summary['duration']:.2f}s")
    click.echo(f"Time to First Token: {format_interval(summary['time_to_first_token'])}")
    click.echo(f"Prompt Tokens (est.): {summary['prompt_token_estimate']}")
    click.echo(f"Response Tokens (est.): {summary['response_token_estimate']}")
    click.echo(f"Total Tokens (est.): {summary['total_token_estimate']}")
    click.echo(f"Tokens/sec (est.): {format_rate(summary['tokens_per_second'])}")


@cli.command('export-runs')
@click.argument('run_ids', nargs=-1)
@click.option('--output', '-o', help='Output file path')
@click.option('--format', type=click.Choice(['csv', 'json', 'parquet']),
              default='csv', help='Output format')
@click.pass_context
def export_runs(ctx, run_ids: tuple, output: Optional[str], format: str):
    """Export stored runs (all runs when none are given) to a single file."""
    store: ResultStore = ctx.obj['result_store']
    error_reporter = ctx.obj['benchmark_logger'].get_error_reporter()

    df = store.export_runs_to_dataframe(list(run_ids) or None)
    if df.empty:
        click.echo("No data found for export")
        return

    if not output:
        output = f"benchmark_runs.{format}"

    try:
        if format == 'csv':
            df.to_csv(output, index=False)
        elif format == 'json':
            df.to_json(output, orient='records', indent=2)
        elif format == 'parquet':
            df.to_parquet(output, index=False)
    except (OSError, ImportError, ValueError) as e:
        error_reporter.report_storage_error(e, operation="export_runs", file_path=output)
        click.echo(f"Error exporting runs: {e}", err=True)
        sys.exit(1)

    click.echo(f"Exported {len(df)} runs to {output}")
    click.echo(f"Columns: {', '.join(df.columns)}")


if __name__ == '__main__':
    cli()
