"""Entry point for python -m clipchain"""
from clipchain.cli.commands import app

if __name__ == "__main__":
    app()
