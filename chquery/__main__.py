from chquery.cli import get_chquery_group


def run_cli() -> None:  # pragma: no cover
    """chquery CLI."""
    get_chquery_group()(prog_name="chquery")


if __name__ == "__main__":  # pragma: no cover
    run_cli()
