"""
Command Line Interface for pipec.
"""
import json
import logging
import os
import sys

import click
import yaml
from pydantic import ValidationError

from ..COMPILER.step_assembler import StepAssembler
from ..MODELS.manifest import Manifest
from ..MODELS.step import StepType
from ..PARSERS.context_loader import ContextLoader
from ..PARSERS.manifest_parser import ManifestParser


def compile_manifest(manifest: Manifest, assembler: StepAssembler) -> dict:
    """
    Compiles every service and step of a manifest, naming them in manifest order.

    :param manifest: The parsed manifest.
    :param assembler: An assembler bound to the pipeline's compilation context.
    :return: Compiled services and steps as plain data.
    """
    prefix = assembler.context.prefix
    services = [
        assembler.assemble(f"{prefix}_services_{i}", declaration, StepType.SERVICE)
        for i, declaration in enumerate(manifest.services)
    ]
    steps = [
        assembler.assemble(f"{prefix}_step_{i}", declaration, StepType.STEP)
        for i, declaration in enumerate(manifest.steps)
    ]
    return {
        'services': [s.model_dump(mode='json') for s in services],
        'steps': [s.model_dump(mode='json') for s in steps],
    }


@click.group()
@click.option('--log-level', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging verbosity')
def cli(log_level):
    """
    pipec - CI pipeline step compiler.

    Turns pipeline manifest steps into backend-neutral execution steps.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command('compile')
@click.option('--context', '-c', 'context_file', default='pipec.yml', help='Compiler configuration file')
@click.option('--file', '-f', 'manifest_file', default='.pipeline.yml', help='Pipeline manifest file')
@click.option('--env-file', default=None, help='Optional .env file used for interpolation')
@click.option('--indent', default=2, type=int, help='JSON indentation')
def compile_command(context_file, manifest_file, env_file, indent):
    """Compile the steps and services of a pipeline manifest."""
    for path in (context_file, manifest_file, env_file):
        if path and not os.path.exists(path):
            click.echo(f"Error: {path} not found.", err=True)
            sys.exit(1)

    try:
        context = ContextLoader(env_file=env_file).load(context_file)
        manifest = ManifestParser().parse(manifest_file)
    except (ValueError, ValidationError, yaml.YAMLError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    result = compile_manifest(manifest, StepAssembler(context))
    click.echo(json.dumps(result, indent=indent))


def main():
    """
    Main entry point for the CLI.
    """
    cli()


if __name__ == '__main__':
    main()
