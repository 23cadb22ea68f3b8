"""Allow running as python -m csvlinguist."""


def main() -> None:
    from csvlinguist.cli import app
    app()


main()
