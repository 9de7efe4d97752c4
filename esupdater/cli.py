import asyncio
import dataclasses
import functools
from typing import Any, Callable, Optional

import click

from esupdater.engines import loggers
from esupdater.reactor import running
from esupdater.structs import configuration, credentials


@dataclasses.dataclass()
class CLIControls:
    """ Controls of the embedding code and tests, which are impossible to pass via CLI. """
    ready_flag: Optional[asyncio.Event] = None
    vault: Optional[credentials.Vault] = None
    settings: Optional[configuration.Settings] = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


@click.version_option(prog_name='esupdater', package_name='externalsecret-updater')
@click.group(name='esupdater', context_settings=dict(
    auto_envvar_prefix='ESUPDATER',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('--host', type=str, default=None)
@click.option('--port', type=int, default=None)
@click.option('--path', type=str, default=None)
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        __controls: CLIControls,
        host: Optional[str],
        port: Optional[int],
        path: Optional[str],
) -> None:
    """ Serve the secret-store webhooks and touch the matching ExternalSecrets. """
    try:
        settings = __controls.settings or configuration.Settings.from_environ()
    except configuration.ConfigurationError as e:
        raise click.UsageError(str(e))

    if host is not None:
        settings.webhook.host = host
    if port is not None:
        settings.webhook.port = port
    if path is not None:
        settings.webhook.path = path

    try:
        return running.run(
            settings=settings,
            vault=__controls.vault,
            ready_flag=__controls.ready_flag,
        )
    except credentials.LoginError as e:
        raise click.ClickException(f"Cannot log into the cluster: {e}")
