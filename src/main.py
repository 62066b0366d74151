from chunk_reader import ReaderOptions, process
from tokenizer import tokenize

import click
import logging
import yaml
import os
from dataclasses import dataclass

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), '..', 'config.yaml')


@dataclass
class Config:
    read_buffer_size: int = 2048
    chunk_size_threshold: int = 10000
    encoding: str = 'utf-8'
    delimiter: str = '\n'

    def reader_options(self):
        return ReaderOptions(
            read_buffer_size=self.read_buffer_size,
            chunk_size_threshold=self.chunk_size_threshold,
            encoding=self.encoding,
        )


def load_config(config_path):
    """Load configuration from a YAML file."""
    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise TypeError(f"expected a mapping of settings, got {type(data).__name__}")
    return Config(**data)


def resolve_config(config_path, **overrides):
    """Load the config file (the bundled one when no path is given) and apply command line overrides."""
    if config_path is None and not os.path.exists(DEFAULT_CONFIG_PATH):
        cfg = Config()
    else:
        path = config_path or DEFAULT_CONFIG_PATH
        try:
            cfg = load_config(path)
        except (yaml.YAMLError, TypeError) as e:
            raise click.ClickException(f"invalid config file {path}: {e}")
    for name, value in overrides.items():
        if value is not None:
            setattr(cfg, name, value)
    return cfg


def reader_options(command):
    """Options shared by every command that reads a file."""
    command = click.option('--config', default=None, type=click.Path(exists=True, dir_okay=False),
                           help='Path to config file')(command)
    command = click.option('--read-buffer-size', type=int, default=None, help='Bytes per read')(command)
    command = click.option('--threshold', type=int, default=None,
                           help='Dispatch a chunk once this many bytes are pending')(command)
    command = click.option('--encoding', default=None, help='Text encoding of the file')(command)
    return command


def build_options(cfg):
    try:
        return cfg.reader_options()
    except (ValueError, LookupError) as e:
        raise click.ClickException(str(e))


def run(read):
    """Run a callback based read to completion and turn a reported error into a CLI failure."""
    outcome = []
    read(outcome.append)
    error = outcome[0]
    if error is not None:
        raise click.ClickException(str(error))


@click.group()
@click.option('--verbose', is_flag=True, help='Log every open, dispatch and close')
def cli(verbose):
    """Stream large text files in bounded chunks."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )


@cli.command()
@click.argument('path')
@reader_options
def chunks(path, config, read_buffer_size, threshold, encoding):
    """Print the size of every chunk dispatched while reading PATH."""
    cfg = resolve_config(config, read_buffer_size=read_buffer_size,
                         chunk_size_threshold=threshold, encoding=encoding)
    options = build_options(cfg)
    index = 0

    def on_chunk(text, is_final):
        nonlocal index
        flag = 'final' if is_final else ''
        click.echo(f"{index:>6} {len(text.encode(options.encoding)):>10} {flag}".rstrip())
        index += 1

    run(lambda on_complete: process(path, on_chunk, on_complete, options))


@cli.command()
@click.argument('path')
@reader_options
@click.option('--delimiter', default=None, help='Token delimiter (defaults to the config value)')
@click.option('--count', is_flag=True, help='Only print the number of tokens')
def tokens(path, config, read_buffer_size, threshold, encoding, delimiter, count):
    """Split PATH on a delimiter and print one token per line."""
    cfg = resolve_config(config, read_buffer_size=read_buffer_size,
                         chunk_size_threshold=threshold, encoding=encoding, delimiter=delimiter)
    options = build_options(cfg)
    if not isinstance(cfg.delimiter, str) or not cfg.delimiter:
        raise click.ClickException('delimiter must be a non-empty string')
    total = 0

    def on_token(token):
        nonlocal total
        total += 1
        if not count:
            click.echo(token)

    run(lambda on_complete: tokenize(path, cfg.delimiter, on_token, on_complete, options))
    if count:
        click.echo(total)


if __name__ == "__main__":
    cli()
