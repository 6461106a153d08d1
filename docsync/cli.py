import json
import sys

import click
import yaml

from .sync.config import SyncConfig, load_config
from .sync.error_tracker import ConfigurationError
from .sync.orchestrator import SyncOrchestrator, SyncSummary


def _load(config_file, output_dir, log_level, log_format) -> SyncConfig:
    """Load the configuration and apply command line overrides; exit 1 when it is invalid."""
    try:
        config = load_config(config_file)
        overrides = {}
        if output_dir:
            overrides['output_directory'] = output_dir
        if log_level:
            overrides['log_level'] = log_level
        if log_format:
            overrides['log_format'] = log_format
        if overrides:
            config = SyncConfig(**{**config.model_dump(), **overrides})
        return config
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


def _run(config: SyncConfig, check: bool, publish: bool, as_json: bool) -> SyncSummary:
    try:
        summary = SyncOrchestrator(config).run(check=check, publish=publish)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        if e.recovery_suggestion:
            click.echo(e.recovery_suggestion, err=True)
        sys.exit(1)
    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2, default=str))
    return summary


def config_options(fn):
    fn = click.option('--config-file', '-c', type=click.Path(dir_okay=False), default=None,
                      help='YAML configuration file (defaults to DOCSYNC_* environment variables)')(fn)
    fn = click.option('--output-dir', '-o', type=click.Path(file_okay=False), default=None,
                      help='Directory holding the renditions')(fn)
    fn = click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
                      default=None, help='Logging level')(fn)
    fn = click.option('--log-format', type=click.Choice(['text', 'json']), default=None, help='Log line format')(fn)
    return fn


@click.group()
def cli():
    """Keep exported documents in sync with an R2 bucket."""
    pass

@cli.command(name='run')
@config_options
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the run summary as JSON')
def run(config_file, output_dir, log_level, log_format, as_json):
    """Fetch every document, detect changes and publish the new versions."""
    config = _load(config_file, output_dir, log_level, log_format)
    _run(config, check=True, publish=True, as_json=as_json)

@cli.command(name='check')
@config_options
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the run summary as JSON')
def check(config_file, output_dir, log_level, log_format, as_json):
    """Fetch every document and keep candidates for the changed ones, without publishing."""
    config = _load(config_file, output_dir, log_level, log_format)
    _run(config, check=True, publish=False, as_json=as_json)

@cli.command(name='publish')
@config_options
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the run summary as JSON')
def publish(config_file, output_dir, log_level, log_format, as_json):
    """Upload and promote the candidates already on disk."""
    config = _load(config_file, output_dir, log_level, log_format)
    _run(config, check=False, publish=True, as_json=as_json)

@cli.command(name='status')
@config_options
def status(config_file, output_dir, log_level, log_format):
    """Show the renditions on disk for every document and format."""
    config = _load(config_file, output_dir, log_level, log_format)
    orchestrator = SyncOrchestrator(config, configure_logging=False)
    click.echo(f"{'lang':<6} {'format':<6} {'current':<8} {'candidate':<10} archives")
    for row in orchestrator.rendition_status():
        click.echo(
            f"{row.lang:<6} {row.format:<6} {'yes' if row.has_current else 'no':<8} "
            f"{'yes' if row.has_candidate else 'no':<10} {row.archives}"
        )

@cli.command(name='show-config')
@config_options
@click.option('--output', type=click.Path(dir_okay=False), default=None,
              help='Write the configuration to this YAML file instead of printing it')
def show_config(config_file, output_dir, log_level, log_format, output):
    """Print the effective configuration as YAML, or save it for use with --config-file."""
    config = _load(config_file, output_dir, log_level, log_format)
    if output:
        config.to_yaml(output)
        click.echo(f"Configuration written to {output}")
    else:
        click.echo(config.dump_yaml())

def main():
    cli()

if __name__ == '__main__':
    main()
