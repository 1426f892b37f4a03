import os

from dotenv import load_dotenv

from wagateway.cli.commands import app

# Load .env file from ~/.wagateway/ if it exists
# Precedence: existing env vars > .env file (override=False)
load_dotenv(os.path.expanduser("~/.wagateway/.env"), override=False)

if __name__ == "__main__":
    app()
