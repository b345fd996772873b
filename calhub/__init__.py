"""calhub - Account configuration and authentication for a calendar/email aggregator

Philosophy:
    One operator, many accounts. Work directory accounts, personal Microsoft
    accounts, a Google account, public ICS feeds and JSON calendar files all
    live in one hand-editable configuration document. Anything that needs a
    login gets it through a headless device-code flow that never blocks the
    caller for longer than it takes to hand out the code.

Components:
    accounts/: Account records, validation rules, the configuration store,
               credential stores and OAuth scopes
    auth/: Identity-provider clients and the authentication flow orchestrator
    admin/: FastAPI admin surface (account CRUD + device-code flows)
    security/: Token encryption at rest
    settings.py: Runtime settings (args/calhub.yaml + environment)
    logging_config.py: structlog setup
    cli.py: `calhub` command line entry point
"""

from pathlib import Path


__version__ = "0.1.0"

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"
DATA_PATH = PROJECT_ROOT / "data"
