"""Main entry point: ``python -m kbsite`` runs the command group."""

import click

from kbsite import __version__
from kbsite.cli.build import build
from kbsite.cli.search import search
from kbsite.cli.show_article import show_article
from kbsite.cli.stats import stats
from kbsite.cli.validate import validate


@click.group()
@click.version_option(__version__, prog_name="kbsite")
def main() -> None:
    """Documentation knowledge-base site generator."""


main.add_command(build)
main.add_command(validate)
main.add_command(search)
main.add_command(show_article, name="show")
main.add_command(stats)


if __name__ == "__main__":
    main()
