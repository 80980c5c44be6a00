"""
Module entry point for: python -m covid_qr

Allows running the decoder directly as a module:
    python -m covid_qr decode <path> [options]
    python -m covid_qr info <pdf_path>
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
