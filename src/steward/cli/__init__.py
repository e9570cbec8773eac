import logging
import pathlib
import sys

from typing_extensions import Annotated

import typer.core

typer.core.rich = None

import typer  # noqa: E402


from . import loaders  # noqa: E402
from ..config import load_config  # noqa: E402
from ..exceptions import FatalError  # noqa: E402


app = typer.Typer(add_completion=False)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option('--verbose', '-v')] = False,
    debug: Annotated[bool, typer.Option('--debug', '-d')] = False,
) -> None:
    """
    Steward, a declarative resource reconciliation engine.
    """
    setattr(ctx, 'obj', {})

    logging.basicConfig(
        level=logging.ERROR,
        format='%(levelname)s: %(module)s: %(message)s',
        stream=sys.stderr,
    )
    log = logging.getLogger('steward')
    log_level = logging.ERROR
    if verbose:
        log_level = logging.INFO
    elif debug:
        log_level = logging.DEBUG
    log.setLevel(log_level)
    ctx.obj['log_level'] = log_level
    ctx.obj['log'] = log
    ctx.obj['debug'] = debug


ConfigFile = Annotated[
    pathlib.Path,
    typer.Option(
        '--config',
        envvar='STEWARD_CONFIG_FILE',
        help='YAML file with the engine configuration.',
    ),
]


@app.command(name='run', short_help='Run the controllers of a manager')
def run(
    ctx: typer.Context,
    target: Annotated[
        str,
        typer.Argument(help='The manager to run as module:attribute or path.py:attribute.'),
    ],
    config_file: ConfigFile = None,
    workers: Annotated[
        int,
        typer.Option('--workers', min=1, help='Number of concurrent reconcilers per controller.'),
    ] = None,
) -> None:
    log = ctx.obj['log']
    try:
        config = load_config(config_file, worker_count=workers)
        manager = loaders.load_manager(
            target,
            config,
            replace_config=config_file is not None or workers is not None,
        )
        manager.debug = ctx.obj['debug']
        log.info('running %r', manager)
        manager.run()
    except FatalError as e:
        typer.echo(f'Error: {e}', err=True)
        raise typer.Exit(code=1)


@app.command(name='config', short_help='Print the effective configuration')
def config(
    ctx: typer.Context,
    config_file: ConfigFile = None,
) -> None:
    try:
        engine_config = load_config(config_file)
    except FatalError as e:
        typer.echo(f'Error: {e}', err=True)
        raise typer.Exit(code=1)
    typer.echo(engine_config.to_yaml(), nl=False)


if __name__ == '__main__':
    app()
