from .cli import app

app(prog_name="deploy-ledger")
